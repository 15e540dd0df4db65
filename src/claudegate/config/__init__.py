"""Configuration management for claudegate.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides for server options and
credentials forwarded to the CLI.
"""

from claudegate.config.settings import Settings, env_summary, load_settings

__all__ = ["Settings", "env_summary", "load_settings"]

"""Configuration management for claudegate.

Loads settings from a YAML configuration file with environment variable
overrides for server options and credentials. Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/claudegate.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class ConcurrencyConfig(BaseModel):
    max_concurrent: int = Field(default=5, ge=1, description="Simultaneous CLI runs")
    queue_timeout: float = Field(default=120.0, gt=0, description="Seconds a request may wait")
    execution_timeout: float | None = Field(
        default=None, gt=0, description="Seconds an admitted run may take (None = no cap)"
    )


class ClaudeConfig(BaseModel):
    command: str = Field(default="claude")
    working_dir: str | None = Field(default=None)
    mcp_config_path: str | None = Field(default=None)
    claude_home: str = Field(default="~/.claude")
    stop_grace_period: float = Field(default=2.0, gt=0)

    def resolve_working_dir(self) -> str:
        return self.working_dir or os.getcwd()


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for claudegate.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "CLAUDEGATE_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Credentials forwarded to the CLI
    anthropic_api_key: SecretStr = Field(default=SecretStr(""))
    anthropic_base_url: str = Field(default="")
    github_pat: SecretStr = Field(default=SecretStr(""))
    context7_api_key: SecretStr = Field(default=SecretStr(""))

    # Configuration sections
    server: ServerConfig = Field(default_factory=ServerConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    claude: ClaudeConfig = Field(default_factory=ClaudeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    # Load .env file manually for non-prefixed vars
    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def env_summary(settings: Settings) -> dict[str, str]:
    """Summarize the effective configuration with secrets masked."""

    def _mask(secret: SecretStr) -> str:
        return "***set***" if secret.get_secret_value() else "not set"

    return {
        "HOST": settings.server.host,
        "PORT": str(settings.server.port),
        "WORKING_DIR": settings.claude.resolve_working_dir(),
        "MAX_CONCURRENT": str(settings.concurrency.max_concurrent),
        "QUEUE_TIMEOUT": f"{settings.concurrency.queue_timeout:g}s",
        "ANTHROPIC_API_KEY": _mask(settings.anthropic_api_key),
        "ANTHROPIC_BASE_URL": settings.anthropic_base_url or "default",
        "GITHUB_PAT": _mask(settings.github_pat),
        "CONTEXT7_API_KEY": _mask(settings.context7_api_key),
        "CORS_ORIGIN": ",".join(settings.server.cors_origins),
    }


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if not os.environ.get(key):
                    os.environ[key] = value


# Non-prefixed env var -> (section, key)
_SECTION_OVERRIDES = {
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
    "WORKING_DIR": ("claude", "working_dir"),
    "MAX_CONCURRENT": ("concurrency", "max_concurrent"),
    "QUEUE_TIMEOUT": ("concurrency", "queue_timeout"),
}

_SECRET_OVERRIDES = {
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "ANTHROPIC_BASE_URL": "anthropic_base_url",
    "GITHUB_PAT": "github_pat",
    "CONTEXT7_API_KEY": "context7_api_key",
}


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply environment variable overrides for non-prefixed vars."""
    for env_key, (section, key) in _SECTION_OVERRIDES.items():
        value = os.environ.get(env_key, "")
        if value:
            yaml_data.setdefault(section, {})[key] = value

    for env_key, field_name in _SECRET_OVERRIDES.items():
        value = os.environ.get(env_key, "")
        if value and not yaml_data.get(field_name):
            yaml_data[field_name] = value

    cors_origin = os.environ.get("CORS_ORIGIN", "")
    if cors_origin:
        origins = [o.strip() for o in cors_origin.split(",") if o.strip()]
        yaml_data.setdefault("server", {})["cors_origins"] = origins

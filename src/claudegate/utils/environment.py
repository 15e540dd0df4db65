"""Environment assembly for the CLI subprocess.

The child inherits the server's environment unchanged; provider and
credential keys known to the settings are set explicitly on top so
values loaded from YAML or .env reach the CLI too.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from claudegate.config.settings import Settings

FORWARDED_ENV_KEYS = (
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_BASE_URL",
    "GITHUB_PAT",
    "CONTEXT7_API_KEY",
)


def build_environment(
    settings: Settings,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return the environment mapping for one CLI invocation."""
    env = dict(os.environ if base is None else base)

    configured = {
        "ANTHROPIC_API_KEY": settings.anthropic_api_key.get_secret_value(),
        "ANTHROPIC_BASE_URL": settings.anthropic_base_url,
        "GITHUB_PAT": settings.github_pat.get_secret_value(),
        "CONTEXT7_API_KEY": settings.context7_api_key.get_secret_value(),
    }
    for key in FORWARDED_ENV_KEYS:
        value = configured[key]
        if value:
            env[key] = value
    return env

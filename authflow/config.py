"""Configuration system for authflow using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.authflow] section (project-level)
3. ./authflow.toml (project-level, explicit)
4. ~/.config/authflow/config.toml (user-level, overrides project)
5. AUTHFLOW_CONFIG_FILE (explicit file)
6. Environment variables (highest priority)

Environment variables use the AUTHFLOW_ prefix with nested delimiter __;
explicit keyword arguments to AuthFlowSettings override every source.
Example: AUTHFLOW_OAUTH2__CLIENT_ID, AUTHFLOW_LOG__LEVEL
"""

from __future__ import annotations

import logging
import os
import sys
import tomllib

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


logger = logging.getLogger("authflow.config")


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    authflow_toml = Path("authflow.toml")
    if authflow_toml.exists():
        files.append(authflow_toml)

    if sys.platform == "win32":
        user_config = Path(os.environ.get("APPDATA", "~")) / "authflow" / "config.toml"
    else:
        user_config = Path("~/.config/authflow/config.toml")
    user_config = user_config.expanduser()
    if user_config.exists():
        files.append(user_config)

    env_config = os.environ.get("AUTHFLOW_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", config_file, exc)
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("authflow", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: AUTHFLOW_LOG__
    Example: AUTHFLOW_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTHFLOW_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> Any:
        """Accept lowercase level names."""
        return v.upper() if isinstance(v, str) else v


class OAuth2Settings(BaseSettings):
    """OAuth2 authorization flow configuration.

    Environment prefix: AUTHFLOW_OAUTH2__
    Example: AUTHFLOW_OAUTH2__CLIENT_ID=your-client-id
    Example: AUTHFLOW_OAUTH2__DOMAIN=samples.auth0.com

    TOML section: [tool.authflow.oauth2]
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTHFLOW_OAUTH2__",
        extra="ignore",
    )

    client_id: str = Field(
        default="",
        description="OAuth2 client ID of this application",
    )
    domain: str = Field(
        default="",
        description="Authorization server domain or issuer URL",
    )
    app_identifier: str = Field(
        default="",
        description="Application identifier used as the redirect URI scheme",
    )
    platform: str = Field(
        default="ios",
        description="Platform path segment of the redirect URI",
    )

    use_pkce: bool = Field(
        default=True,
        description="Use the authorization code grant with PKCE instead of the implicit grant",
    )
    universal_link: bool = Field(
        default=False,
        description="Use an https redirect URI (universal link) instead of the app scheme",
    )

    scope: str = Field(
        default="",
        description="Space-separated scopes to request (empty to omit)",
    )
    connection: str = Field(
        default="",
        description="Identity provider connection to use (empty for the hosted login page)",
    )
    audience: str = Field(
        default="",
        description="API audience to request tokens for (empty to omit)",
    )

    token_timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        description="Timeout of the authorization code exchange request",
    )

    @field_validator("domain")
    @classmethod
    def _strip_domain(cls, v: str) -> str:
        """Drop surrounding whitespace and trailing slashes."""
        return v.strip().rstrip("/")


class _TomlFilesSource(PydanticBaseSettingsSource):
    """Settings source backed by the discovered TOML configuration files."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        # Values are produced all at once by __call__
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return _load_toml_config()


class AuthFlowSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: AUTHFLOW_ (nested delimiter ``__``)

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.authflow] section
    3. ./authflow.toml (project-level)
    4. ~/.config/authflow/config.toml (user-level, overrides project)
    5. AUTHFLOW_CONFIG_FILE
    6. Environment variables
    7. Explicit keyword arguments (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTHFLOW_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    oauth2: OAuth2Settings = Field(default_factory=OAuth2Settings)
    log: LogSettings = Field(default_factory=LogSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Rank TOML files below the environment."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _TomlFilesSource(settings_cls),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> AuthFlowSettings:
    """Get cached settings instance.

    Returns
    -------
    AuthFlowSettings
        The merged configuration.
    """
    return AuthFlowSettings()


def reload_settings() -> AuthFlowSettings:
    """Discard cached settings and load them again."""
    get_settings.cache_clear()
    return get_settings()

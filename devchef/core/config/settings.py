"""
Global settings — the user-level key/value store.

Lives at ``$DEVCHEF_HOME/config.yml`` (default ``~/.devchef``). A missing
file means defaults. Registry credentials can also come from the
environment, which wins over the file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from devchef.core.errors import ConfigurationInvalid

logger = logging.getLogger(__name__)

SETTINGS_FILE = "config.yml"

_REGISTRY_ENV = {
    "registry_url": "DEVCHEF_REGISTRY_URL",
    "registry_username": "DEVCHEF_REGISTRY_USERNAME",
    "registry_password": "DEVCHEF_REGISTRY_PASSWORD",
    "registry_token": "DEVCHEF_REGISTRY_TOKEN",
}


def devchef_home() -> Path:
    return Path(os.environ.get("DEVCHEF_HOME") or Path.home() / ".devchef")


class Settings(BaseModel):
    """User-level configuration."""

    use_proxy: bool = False
    proxy_base_port: int = 8100
    lang: str = "en"
    admin_password: str | None = None
    active_instance: str | None = None

    registry_url: str | None = None
    registry_username: str | None = None
    registry_password: str | None = None
    registry_token: str | None = None

    @property
    def registry_secret(self) -> str | None:
        return self.registry_token or self.registry_password

    def has_registry(self) -> bool:
        return bool(self.registry_url and self.registry_username and self.registry_secret)


def settings_path(home: Path | None = None) -> Path:
    return (home or devchef_home()) / SETTINGS_FILE


def load_settings(home: Path | None = None) -> Settings:
    """Load settings from YAML, overlaying registry env vars.

    Raises:
        ConfigurationInvalid: the file exists but is not valid.
    """
    path = settings_path(home)
    data: dict = {}
    if path.is_file():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationInvalid(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationInvalid(f"Settings file must be a mapping: {path}")
    else:
        logger.debug("No settings file at %s, using defaults", path)

    for field, env_var in _REGISTRY_ENV.items():
        value = os.environ.get(env_var)
        if value:
            data[field] = value

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationInvalid(f"Invalid settings in {path}: {e}") from e


def save_settings(settings: Settings, home: Path | None = None) -> None:
    path = settings_path(home)
    path.parent.mkdir(parents=True, exist_ok=True)
    # Secrets stay wherever the user put them; never written back
    data = settings.model_dump(exclude_none=True, exclude={"registry_password", "registry_token"})
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    logger.debug("Settings saved to %s", path)

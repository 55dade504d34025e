"""Settings resolution.

Settings come from environment variables and a YAML config file at
$XDG_CONFIG_HOME/brief/config.yaml (default ~/.config/brief/config.yaml).
Environment wins by default; set BRIEF_CONFIG_PRIORITY=config (or
`config.priority: config` in the file) to let the file win.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

CONFIG_DIR_NAME = "brief"
CONFIG_FILE_NAME = "config.yaml"
PRIORITY_ENV = "BRIEF_CONFIG_PRIORITY"
PRIORITY_KEY = "config.priority"

# Settings field -> (environment variable, dotted config-file key)
SETTING_SOURCES: dict[str, tuple[str, str]] = {
    "provider": ("LLM_PROVIDER", "provider"),
    "api_key": ("OPENAI_API_KEY", "openai.api_key"),
    "base_url": ("OPENAI_BASE_URL", "openai.base_url"),
    "model": ("LLM_MODEL", "model"),
    "system_prompt": ("BRIEF_SYSTEM_PROMPT", "system_prompt"),
    "request_timeout": ("BRIEF_REQUEST_TIMEOUT", "request_timeout"),
    "max_context_tokens": ("BRIEF_MAX_CONTEXT_TOKENS", "max_context_tokens"),
    "temperature": ("BRIEF_TEMPERATURE", "temperature"),
}


class Priority(str, Enum):
    ENV = "env"
    CONFIG = "config"


class Settings(BaseModel):
    """Resolved application settings."""

    provider: str = Field(default="openai", description="Endpoint family")
    api_key: str | None = Field(default=None, description="API credential")
    base_url: str | None = Field(default=None, description="Custom API base URL")
    model: str = Field(default="gpt-4o-mini", description="Model identifier")
    system_prompt: str | None = Field(default=None, description="Optional system prompt")
    request_timeout: float = Field(default=120.0, gt=0, description="Deadline per reply in seconds")
    max_context_tokens: int | None = Field(default=None, gt=0, description="Context budget (None = full history)")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigError(
                "No API key configured. Set OPENAI_API_KEY or run "
                "`brief config set openai.api_key <key>`."
            )
        return self.api_key


def default_config_path() -> Path:
    """Config file location honoring XDG_CONFIG_HOME."""
    xdg = os.getenv("XDG_CONFIG_HOME", "").strip()
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / CONFIG_DIR_NAME / CONFIG_FILE_NAME


class ConfigStore:
    """Reads and writes the YAML config file using dotted keys."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or default_config_path()
        self._data: dict[str, Any] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        """Load the file (missing file means empty config).

        Raises:
            ConfigError: If the file is unreadable or not a YAML mapping
        """
        if not self._path.exists():
            self._data = {}
        else:
            try:
                raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Config unreadable: {self._path}: {e}") from e
            if raw is None:
                raw = {}
            if not isinstance(raw, dict):
                raise ConfigError(f"Config must be a mapping: {self._path}")
            self._data = raw
        self._loaded = True
        return self._data

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def get(self, key: str) -> Any | None:
        """Get a value by dotted key, e.g. "openai.api_key"."""
        self._ensure_loaded()
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a value by dotted key and persist the file."""
        self._ensure_loaded()
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
        self.save()

    def save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                yaml.safe_dump(self._data, sort_keys=True, default_flow_style=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise ConfigError(f"Settings not saved: {self._path}: {e}") from e

    def as_dict(self) -> dict[str, Any]:
        self._ensure_loaded()
        return dict(self._data)


def resolve_priority(store: ConfigStore) -> Priority:
    """Bootstrap priority; this meta-setting always prefers the environment."""
    env = os.getenv(PRIORITY_ENV, "").strip()
    if env:
        return Priority.CONFIG if env.lower() == "config" else Priority.ENV
    cfg = str(store.get(PRIORITY_KEY) or "").strip()
    return Priority.CONFIG if cfg.lower() == "config" else Priority.ENV


def _clean(value: Any) -> Any | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def load_settings(store: ConfigStore | None = None, **overrides: Any) -> Settings:
    """Resolve settings from environment, config file and explicit overrides.

    Args:
        store: Config file store (default location if None)
        **overrides: Values that beat both sources (e.g. CLI options); None is ignored

    Raises:
        ConfigError: If the config file is unreadable or a value is invalid
    """
    store = store or ConfigStore()
    priority = resolve_priority(store)

    values: dict[str, Any] = {}
    for field_name, (env_var, key) in SETTING_SOURCES.items():
        env_value = _clean(os.getenv(env_var))
        cfg_value = _clean(store.get(key))
        if priority == Priority.CONFIG:
            value = cfg_value if cfg_value is not None else env_value
        else:
            value = env_value if env_value is not None else cfg_value
        if value is not None:
            values[field_name] = value

    values.update({name: value for name, value in overrides.items() if value is not None})

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

"""
Client configuration — TOML file over built-in defaults.

Default location: ~/.chatpush/config.toml

    log_level = "INFO"
    key_file = "~/.chatpush/keys.json"   # empty: keys live in memory only

    [registrar]
    app_id = "AcsIos"
    template_key = "AcsIos.AcsNotify_Chat_4.0"
    ttl = 15552000
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

from chatpush import (
    CONFIG_DIR,
    REGISTRAR_APP_ID,
    REGISTRAR_PLATFORM,
    REGISTRAR_PLATFORM_UI_VERSION,
    REGISTRAR_TEMPLATE_KEY,
    REGISTRAR_TRANSPORT,
    REGISTRAR_TTL_SECS,
)

log = logging.getLogger(__name__)

# Default config
DEFAULT_CONFIG: dict[str, Any] = {
    "log_level": "WARNING",
    "key_file": "",
    "registrar": {
        "node_id": "",  # unused by the service but required in the request
        "app_id": REGISTRAR_APP_ID,
        "language_id": "",
        "platform": REGISTRAR_PLATFORM,
        "platform_ui_version": REGISTRAR_PLATFORM_UI_VERSION,
        "template_key": REGISTRAR_TEMPLATE_KEY,
        "transport": REGISTRAR_TRANSPORT,
        "ttl": REGISTRAR_TTL_SECS,
        "context": "",
    },
}


def default_config_path() -> Path:
    return Path.home() / CONFIG_DIR / "config.toml"


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load client config from TOML file, falling back to defaults.

    Tables are merged key by key, so a file that sets only
    ``registrar.ttl`` keeps every other registrar default.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    path = config_path or default_config_path()
    if path.is_file():
        try:
            import tomllib
        except ImportError:
            try:
                import tomli as tomllib
            except ImportError:
                log.warning("tomllib/tomli not available, using default config")
                return config

        try:
            with open(path, "rb") as f:
                file_config = tomllib.load(f)
        except Exception as e:
            log.warning("Failed to load config from %s: %s", path, e)
            return config

        for key, value in file_config.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value

    return config


def key_file_path(config: dict[str, Any]) -> Path | None:
    """The configured key file, or None for in-memory keys."""
    key_file = config.get("key_file") or ""
    if not key_file:
        return None
    return Path(key_file).expanduser()

# bundleforge/app/settings.py
from __future__ import annotations
import json5, os
from pydantic import JsonValue
from pathlib import Path
from typing import Any, cast
from functools import lru_cache

from bundleforge.core.dictpath import getByPath

import logging
logger = logging.getLogger(__name__)

__all__ = [
    "PACKAGE_DIR", "SETTINGS_DEFAULT_PATH", "USER_SETTINGS_PATH", "DEFAULTS",
    "loadUserSettings", "loadSettings", "deepMerge", "settings", "settingsBool",
]



PACKAGE_DIR = Path(__file__).resolve().parent.parent # bundleforge/
SETTINGS_DEFAULT_PATH = PACKAGE_DIR / "settings_default.json5"
USER_SETTINGS_PATH = Path(os.path.expanduser("~/.bundleforge/bundleforge.json5"))

DEFAULTS: JsonValue = {
    "__source": "BUNDLEFORGE_DEFAULTS",
    "catalog": {
        "sourceTag": "nexus",
        "baseUrl": "https://api.nexusmods.com/v2",
        "apiKeyEnv": "BUNDLEFORGE_API_KEY",
        "timeoutMs": 30_000,
        "retries": 2,
        "backoff": {"baseMs": 250, "maxMs": 1000},
    },
    "infoCache": {"refreshAfterSeconds": 86_400},
    "notifications": {"alreadyInstallingMs": 5000},
    "logging": {
        "devMode": True,
        "file": "bundleforge.log",
        "fileMaxBytes": 10 * 1024 * 1024,
        "fileBackups": 5,
    },
}



def _loadJson5(filePath: Path) -> JsonValue:
    if filePath.exists():
        try:
            return json5.loads(filePath.read_text(encoding="utf-8"))
        except Exception as err:
            logger.error("Failed to parse '%s': %s", filePath, err)
    return {}



def loadUserSettings() -> JsonValue:
    return _loadJson5(USER_SETTINGS_PATH)



@lru_cache(maxsize=1)
def loadSettings() -> JsonValue:
    shipped = deepMerge(DEFAULTS, _loadJson5(SETTINGS_DEFAULT_PATH))
    return deepMerge(shipped, loadUserSettings())



def deepMerge(first: JsonValue, second: JsonValue) -> JsonValue:
    """
    Returns a new JsonValue where keys from `second` override/extend `first`.
    Only merges recursively when BOTH sides are JSON objects (dicts).
    For all other JSON types the right-hand value `second` replaces `first`.
    """
    if isinstance(first, dict) and isinstance(second, dict):
        out: dict[str, JsonValue] = dict(first)
        for key, value in second.items():
            if key in out:
                out[key] = deepMerge(out[key], cast(JsonValue, value))
            else:
                out[key] = cast(JsonValue, value)
        return cast(JsonValue, out)

    return cast(JsonValue, second)

# ---------- Ergonomic accessors over merged settings ----------

def settings(path: str, default: Any = None) -> Any:
    """Returns value at `path` from merged settings, or `default` if missing."""
    val = getByPath(loadSettings(), path)
    return default if val is None else val



def settingsBool(path: str, default: bool = False) -> bool:
    """Returns bool value at `path` or `default` if missing."""
    val = getByPath(loadSettings(), path)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    return bool(val)

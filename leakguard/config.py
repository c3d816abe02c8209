"""Configuration loading.

Settings are loaded from ``config.json`` if present and then overridden by
environment variables. Recognized keys/env vars:

- ``redis_url`` / ``REDIS_URL``: Redis connection URL (empty = in-process store)
- ``leakcheck_api_url`` / ``LEAKCHECK_API_URL``: LeakCheck public endpoint
- ``leakcheck_api_key`` / ``LEAKCHECK_API_KEY``: optional LeakCheck key
- ``xposedornot_api_url`` / ``XPOSED_OR_NOT_API_URL``: XposedOrNot API base
- ``xposedornot_password_url`` / ``XPOSED_OR_NOT_PASSWORD_URL``: anonymous
  password range endpoint
- ``telegram_bot_token`` / ``TELEGRAM_BOT_TOKEN``: notification transport
- ``browser_pool_size`` / ``BROWSER_POOL_SIZE``: pre-warmed browser slots
- ``browser_headless`` / ``BROWSER_HEADLESS``: run Chromium headless
- ``browser_executable_path`` / ``PLAYWRIGHT_EXECUTABLE_PATH``: custom Chromium
- ``fetch_max_attempts`` / ``FETCH_MAX_ATTEMPTS``: clearance attempts per fetch
- ``clearance_required`` / ``CLEARANCE_REQUIRED``: demand a clearance cookie
- ``checker_timeout`` / ``CHECKER_TIMEOUT``: per-checker timeout in seconds
- ``monitor_interval`` / ``MONITOR_INTERVAL``: monitoring period in seconds
"""

import os
import json
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "redis_url": "",
    "leakcheck_api_url": "https://leakcheck.io/api/public",
    "leakcheck_api_key": None,
    "xposedornot_api_url": "https://api.xposedornot.com/v1",
    "xposedornot_password_url": "https://passwords.xposedornot.com/api/v1/pass/anon",
    "telegram_bot_token": None,
    "browser_pool_size": 5,
    "browser_headless": True,
    "browser_executable_path": None,
    "fetch_max_attempts": 3,
    "clearance_required": True,
    "checker_timeout": 35,
    "monitor_interval": 24 * 60 * 60,
}

ENV_VARS = {
    "redis_url": "REDIS_URL",
    "leakcheck_api_url": "LEAKCHECK_API_URL",
    "leakcheck_api_key": "LEAKCHECK_API_KEY",
    "xposedornot_api_url": "XPOSED_OR_NOT_API_URL",
    "xposedornot_password_url": "XPOSED_OR_NOT_PASSWORD_URL",
    "telegram_bot_token": "TELEGRAM_BOT_TOKEN",
    "browser_pool_size": "BROWSER_POOL_SIZE",
    "browser_headless": "BROWSER_HEADLESS",
    "browser_executable_path": "PLAYWRIGHT_EXECUTABLE_PATH",
    "fetch_max_attempts": "FETCH_MAX_ATTEMPTS",
    "clearance_required": "CLEARANCE_REQUIRED",
    "checker_timeout": "CHECKER_TIMEOUT",
    "monitor_interval": "MONITOR_INTERVAL",
}

_TRUTHY = {"1", "true", "yes", "y", "on"}
_FALSY = {"0", "false", "no", "n", "off"}


def _coerce(key: str, value: Any) -> Any:
    """Coerce *value* to the type of the default for *key*.

    Values that cannot be coerced fall back to the default with a warning.
    """
    default = DEFAULTS.get(key)
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUTHY:
            return True
        if text in _FALSY:
            return False
    elif isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            pass
    else:
        return value
    logger.warning("Invalid value for %s: %r; using default %r", key, value, default)
    return default


def load_config(path: str = "config.json") -> dict:
    """Load settings from *path* and the environment.

    Args:
        path: Optional JSON file with any of the recognized keys.

    Returns:
        A dictionary with every key in :data:`DEFAULTS`, environment
        variables taking precedence over the file.
    """
    config = dict(DEFAULTS)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
            if isinstance(data, dict):
                config.update({k: v for k, v in data.items() if v is not None and v != ""})
            logger.debug("Loaded configuration from %s", path)
    except (OSError, ValueError) as exc:
        logger.debug("Could not load %s: %s", path, exc)

    for key, env_name in ENV_VARS.items():
        value = os.environ.get(env_name)
        if value is not None and value != "":
            config[key] = value

    return {key: _coerce(key, value) for key, value in config.items()}

"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.slotgate/config.yaml). Keys are dotted
(`request.concurrency_limit`); the matching environment variable is the key
upper-cased with dots replaced by underscores and a `SLOTGATE_` prefix
(`SLOTGATE_REQUEST_CONCURRENCY_LIMIT`).
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from slotgate.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".slotgate"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "SLOTGATE_"

# Max number of concurrent requests. This is different from the transaction
# concurrency limit, which bounds units of work that may span several requests.
DEFAULT_REQUEST_CONCURRENCY_LIMIT = 100
DEFAULT_TRANSACTION_CONCURRENCY_LIMIT = 30
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_HEADROOM_MARGIN = 10
DEFAULT_BUFFER_MS = 1000
DEFAULT_WARN_REMAINING = 11

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Turns nested YAML mappings into dotted keys."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def env_var_name(key: str) -> str:
    return f"{ENV_PREFIX}{key.upper().replace('.', '_')}"


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None,
                       force: bool = False) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values passed to `get_config`

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. YAML file (lowest priority)
    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. .env file; override=False so real environment variables win
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no file found).")

    _loaded = True
    logger.debug("Configuration loading process completed.")


def _coerce(value: str) -> Any:
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        if "." in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def get_config(key: str, default: Any = None, coerce: bool = True) -> Any:
    """
    Get a configuration value by dotted key.

    Environment values are converted to bool/int/float unless `coerce` is
    False (secrets and URLs are read verbatim).

    Priority:
    1. Test configuration
    2. Environment variable (SLOTGATE_<KEY>)
    3. YAML config
    4. Default value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_var_name(key)
    if env_key in os.environ:
        raw = os.environ[env_key]
        return _coerce(raw) if coerce else raw

    if key in _config:
        return _config[key]

    logger.debug(f"Config key '{key}' not found. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def _get_int(key: str, default: int, minimum: int = 0) -> int:
    value = get_config(key, default)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Config '{key}' must be an integer, got {value!r}") from None
    if number < minimum:
        raise ConfigurationError(f"Config '{key}' must be >= {minimum}, got {number}")
    return number


# --- Convenience Functions ---

def get_base_url() -> str:
    """Upstream base URL; required."""
    value = get_config("upstream.base_url", coerce=False)
    if not value:
        raise ConfigurationError(f"Upstream base URL not configured (set {env_var_name('upstream.base_url')}).")
    return str(value).rstrip("/")


def get_api_token() -> str:
    """Upstream API token; required."""
    value = get_config("upstream.api_token", coerce=False)
    if not value:
        raise ConfigurationError(f"Upstream API token not configured (set {env_var_name('upstream.api_token')}).")
    return str(value)


def get_timeout_seconds() -> float:
    return float(get_config("upstream.timeout_seconds", DEFAULT_TIMEOUT_SECONDS))


def get_request_concurrency_limit() -> int:
    return _get_int("request.concurrency_limit", DEFAULT_REQUEST_CONCURRENCY_LIMIT, minimum=1)


def get_transaction_concurrency_limit() -> int:
    return _get_int("transaction.concurrency_limit", DEFAULT_TRANSACTION_CONCURRENCY_LIMIT, minimum=1)


def get_headroom_margin() -> int:
    return _get_int("rate_limit.headroom_margin", DEFAULT_HEADROOM_MARGIN)


def get_buffer_ms() -> int:
    return _get_int("rate_limit.buffer_ms", DEFAULT_BUFFER_MS)


def get_warn_remaining() -> int:
    return _get_int("rate_limit.warn_remaining", DEFAULT_WARN_REMAINING)


def get_strict_release() -> bool:
    flag = get_config("pool.strict_release", True)
    if isinstance(flag, str):
        if flag.lower() in ("true", "1", "yes"):
            return True
        if flag.lower() in ("false", "0", "no"):
            return False
        logger.warning(f"Unexpected value for pool.strict_release: '{flag}'. Defaulting to True.")
        return True
    return bool(flag)


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values override any existing configuration.
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")

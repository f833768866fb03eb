# memo_mirror/config.py
# Description: Configuration management for the memo_mirror application.
#
# Imports
import copy
import os
import sys
if sys.version_info < (3, 11):
    import tomli as tomllib
else:
    import tomllib
from pathlib import Path
from typing import Any, Dict, Optional
#
# Third-Party Imports
import toml
from loguru import logger
#
#######################################################################################################################
#
# Functions:

# --- Path to the CLI's configuration file ---
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "memo_mirror" / "config.toml"
BASE_DATA_DIR_CLI = Path.home() / ".local" / "share" / "memo_mirror"

# Environment overrides
CONFIG_PATH_ENV_VAR = "MEMO_MIRROR_CONFIG"
DB_PATH_ENV_VAR = "MEMO_MIRROR_DB"
TOKEN_ENV_VAR = "FLOMO_TOKEN"

CONFIG_TOML_CONTENT = """
# Configuration for memo_mirror
# Located at: ~/.config/memo_mirror/config.toml
[general]
log_level = "INFO" # DEBUG, INFO, WARNING, ERROR, CRITICAL

[database]
memos_db_path = "~/.local/share/memo_mirror/memos.db"

[flomo]
# Authorization token copied from the flomo web app. "Bearer " is added if missing.
authorization = ""
base_url = "https://flomoapp.com/api/v1/memo/updated/"
request_timeout_seconds = 30.0

[sync]
max_iterations = 100 # Hard ceiling on pages fetched per run
unproductive_page_limit = 2 # Consecutive empty/all-duplicate pages before the run ends

[logging]
log_filename = "memo_mirror.log"
rotation = "10 MB"
retention = "14 days"
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"Could not parse internal CONFIG_TOML_CONTENT: {e}")
    DEFAULT_CONFIG_FROM_TOML = {}

_CONFIG_CACHE: Optional[Dict[str, Any]] = None


def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update_dict into base_dict."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_config_path() -> Path:
    """Config file location; MEMO_MIRROR_CONFIG wins over the default."""
    env_path = os.environ.get(CONFIG_PATH_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def load_cli_config_and_ensure_existence(force_reload: bool = False) -> Dict[str, Any]:
    """
    Loads settings from the TOML config file.
    If the file doesn't exist, it's created with default values from CONFIG_TOML_CONTENT.
    Values from the file are merged on top of the programmatic defaults.
    """
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None and not force_reload:
        return _CONFIG_CACHE

    config_path = get_config_path()
    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not config_path.exists():
        logger.info(f"Config file not found at {config_path}. Creating it with default values.")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w", encoding="utf-8") as f:
                f.write(CONFIG_TOML_CONTENT)
            logger.info(f"Created default config file at {config_path}")
        except OSError as e:
            logger.error(f"Could not create default config file {config_path}: {e}. Using internal defaults.")
    else:
        logger.debug(f"Loading config from: {config_path}")
        try:
            with open(config_path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding config file {config_path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {config_path}: {e}. Using internal defaults.")

    _CONFIG_CACHE = loaded_config
    return _CONFIG_CACHE


def reset_config_cache() -> None:
    """Drop the cached config so the next read goes back to disk."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = None


def get_cli_setting(section: str, key: str, default: Any = None) -> Any:
    """Helper to get a specific setting from the loaded configuration."""
    config = load_cli_config_and_ensure_existence()
    section_data = config.get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


def save_setting_to_cli_config(section: str, key: str, value: Any) -> bool:
    """
    Saves a specific setting to the user's TOML configuration file.

    Reads the current file, updates the key within the (possibly dotted) section,
    writes the whole file back and reloads the cache.

    Returns:
        True if the setting was saved successfully, False otherwise.
    """
    config_path = get_config_path()
    logger.info(f"Saving setting [{section}].{key}")

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create config directory {config_path.parent}: {e}")
        return False

    config_data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                config_data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Corrupted config file at {config_path}. Cannot save. Please fix or delete it. Error: {e}")
            return False

    current_level = config_data
    try:
        for part in section.split('.'):
            current_level = current_level.setdefault(part, {})
        current_level[key] = value
    except (TypeError, AttributeError):
        logger.error(
            f"Configuration structure conflict. Could not set '{key}' in section '{section}' "
            f"because a part of the path is not a table."
        )
        return False

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            toml.dump(config_data, f)
    except OSError as e:
        logger.error(f"Failed to write updated config to {config_path}: {e}")
        return False

    logger.success(f"Saved setting to {config_path}")
    load_cli_config_and_ensure_existence(force_reload=True)
    return True


# --- Credentials ---

def load_token() -> Optional[str]:
    """Authorization token from FLOMO_TOKEN, falling back to the config file."""
    env_token = os.environ.get(TOKEN_ENV_VAR)
    if env_token:
        return env_token
    token = get_cli_setting("flomo", "authorization", "")
    return token or None


def save_token(token: str) -> bool:
    return save_setting_to_cli_config("flomo", "authorization", token.strip())


# --- Paths ---

def get_memos_db_path() -> Path:
    env_path = os.environ.get(DB_PATH_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser().resolve()
    default_db_path_str = DEFAULT_CONFIG_FROM_TOML.get("database", {}).get(
        "memos_db_path", str(BASE_DATA_DIR_CLI / "memos.db"))
    db_path_str = get_cli_setting("database", "memos_db_path", default_db_path_str)
    return Path(db_path_str).expanduser().resolve()


def get_cli_log_file_path() -> Path:
    default_log_filename = DEFAULT_CONFIG_FROM_TOML.get("logging", {}).get("log_filename", "memo_mirror.log")
    log_filename = get_cli_setting("logging", "log_filename", default_log_filename)
    log_file_path = get_memos_db_path().parent / log_filename
    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create log directory {log_file_path.parent}: {e}")
    return log_file_path

#
# End of config.py
#######################################################################################################################

import copy
import json
import logging
import sys
from pathlib import Path

log = logging.getLogger("Config")

CONFIG_FILE = Path("config.json")

DEFAULT_USERNAME = "YourOsuUsername"
DEFAULT_PASSWORD = "YourOsuIRCPassword"

DEFAULTS = {
    "server": "irc.ppy.sh",
    "port": 6667,
    "username": DEFAULT_USERNAME,
    "password": DEFAULT_PASSWORD,
    "room_id": 0,
    "administrators": [],
    "welcome_message": "Auto host rotation active! Use !queue to see the order, !skip to vote skip the host.",
    "goodbye_message": "Bot disconnecting.",
    "vote_skip": {
        "threshold_type": "percentage",
        "threshold_value": 51
    },
    "previous_queue": None
}


# --- Helper Function: Save Configuration ---
def save_config(config_data, filepath=CONFIG_FILE):
    try:
        config_to_save = copy.deepcopy(config_data)
        with filepath.open('w', encoding='utf-8') as f:
            json.dump(config_to_save, f, indent=4, ensure_ascii=False)
        log.info(f"Configuration saved successfully to '{filepath}'.")
        return True
    except (IOError, TypeError, PermissionError) as e:
        log.error(f"Could not save config file '{filepath}': {e}")
        return False


def merge_configs(base, updates):
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if key in merged:
            if isinstance(value, dict) and isinstance(merged[key], dict):
                merged[key] = merge_configs(merged[key], value)
            elif not isinstance(value, dict) and value is not None:
                is_sensitive_default = (key == "password" and value == DEFAULT_PASSWORD) or \
                                       (key == "username" and value == DEFAULT_USERNAME)
                if not is_sensitive_default: merged[key] = value
    return merged


def validate_config(final_config):
    """Type coercion and normalisation on a merged config. Exits on missing credentials."""
    missing_critical = []
    for k in ["username", "password"]:
        val = final_config.get(k)
        is_default = (k == "password" and val == DEFAULT_PASSWORD) or \
                     (k == "username" and val == DEFAULT_USERNAME)
        if not val or is_default: missing_critical.append(k)
    if missing_critical:
        log.critical(f"FATAL: Missing or default required config keys: {', '.join(missing_critical)}.")
        sys.exit(1)

    for key in ["port", "room_id"]:
        try:
            final_config[key] = int(final_config[key])
        except (ValueError, TypeError):
            log.warning(f"Invalid value for '{key}': {final_config[key]!r}. Using default: {DEFAULTS[key]}")
            final_config[key] = DEFAULTS[key]

    vs_config = final_config.get("vote_skip")
    if not isinstance(vs_config, dict):
        log.warning("Config section 'vote_skip' is not a dictionary. Resetting to default.")
        vs_config = final_config["vote_skip"] = copy.deepcopy(DEFAULTS["vote_skip"])
    if vs_config.get("threshold_type") not in ("percentage", "fixed"):
        log.warning(f"Invalid vote_skip.threshold_type '{vs_config.get('threshold_type')}'. Using 'percentage'.")
        vs_config["threshold_type"] = "percentage"
    try:
        vs_config["threshold_value"] = int(vs_config["threshold_value"])
    except (ValueError, TypeError):
        log.warning(f"Invalid vote_skip.threshold_value. Using default: {DEFAULTS['vote_skip']['threshold_value']}")
        vs_config["threshold_value"] = DEFAULTS["vote_skip"]["threshold_value"]

    admins = final_config.get("administrators")
    if isinstance(admins, str):
        admins = [admins]
    if not isinstance(admins, list):
        log.warning("Config key 'administrators' is not a list. Resetting to empty list.")
        admins = []
    final_config["administrators"] = [str(a).strip() for a in admins if str(a).strip()]

    previous_queue = final_config.get("previous_queue")
    if isinstance(previous_queue, list):
        previous_queue = ",".join(str(p) for p in previous_queue)
    final_config["previous_queue"] = str(previous_queue) if previous_queue else None
    return final_config


# --- Configuration Loading/Generation ---
def load_or_generate_config(filepath=CONFIG_FILE):
    """Loads config from JSON file or generates a default one if not found.
       Values from the existing file win over defaults (recursive merge)."""
    try:
        if not filepath.exists():
            log.warning(f"Config file '{filepath}' not found. Generating default config.")
            log.warning(f">>> IMPORTANT: Edit '{filepath}' with your osu! username and IRC password before running again! <<<")
            if not save_config(DEFAULTS, filepath):
                log.critical(f"FATAL: Could not write default config file '{filepath}'.")
                sys.exit(1)
            return copy.deepcopy(DEFAULTS)

        log.info(f"Loading configuration from '{filepath}'...")
        with filepath.open('r', encoding='utf-8') as f:
            user_config = json.load(f)
        if not isinstance(user_config, dict):
            raise TypeError("top-level JSON value must be an object")

        final_config = validate_config(merge_configs(DEFAULTS, user_config))
        log.info(f"Configuration loaded and validated successfully from '{filepath}'.")
        return final_config

    except (json.JSONDecodeError, TypeError) as e:
        log.critical(f"FATAL: Error parsing config file '{filepath}': {e}. Check JSON format.")
        sys.exit(1)

#!/usr/bin/env python3
"""
config.py

Central configuration for the Chimplet list service facade.

🔧 WHERE SETTINGS COME FROM:
============================
   1. Environment variables (or a local .env file, loaded with override)
   2. The JSON settings file (SETTINGS_FILE) written by `--set-api-key`

   Options are addressed with dotted paths, e.g. "mailchimp.api_key".
   A value saved in the settings file wins over the environment.

🎮 EXECUTION COMMANDS:
=====================
   python -m chimplet.main                     # Print the account overview
   python -m chimplet.main --ping              # Check the stored API key
   python -m chimplet.main --set-api-key KEY   # Validate and store a new key
"""

import os
import json
import logging
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv(override=True)

logger = logging.getLogger(__name__)

# =============================================================================
# 🔐 API CREDENTIALS
# =============================================================================

MAILCHIMP_API_KEY = os.getenv("MAILCHIMP_API_KEY", "").strip()
MAILCHIMP_LIST_ID = os.getenv("MAILCHIMP_LIST_ID", "").strip()


def get_mailchimp_datacenter(api_key: Optional[str] = None) -> str:
    """
    Extract datacenter from a Mailchimp API key.

    Mailchimp API keys are formatted as: <key>-<datacenter>
    Falls back to the MAILCHIMP_DC environment variable when the key has no suffix.
    """
    if api_key is None:
        api_key = MAILCHIMP_API_KEY
    if api_key and '-' in api_key:
        return api_key.split('-')[-1].strip()

    dc_from_env = os.getenv("MAILCHIMP_DC", "").strip()
    if api_key:
        logger.debug(f"Could not extract datacenter from API key, using environment variable: {dc_from_env!r}")
    return dc_from_env


MAILCHIMP_DC = get_mailchimp_datacenter()

# =============================================================================
# ⚙️ CONNECTION PARAMETERS
# =============================================================================

MAILCHIMP_TIMEOUT = float(os.getenv("MAILCHIMP_TIMEOUT", "10"))     # seconds per HTTP request
MAILCHIMP_USER_AGENT = os.getenv("MAILCHIMP_USER_AGENT", "Chimplet/0.1")

# The remote service never returns more than 100 lists in one page
MAX_PAGE_SIZE = 100

# Exact payload of a healthy /ping response
PING_ACKNOWLEDGEMENT = "Everything's Chimpy!"

# =============================================================================
# 🗂️ STORAGE & LOGGING
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "logs")
SETTINGS_FILE = os.getenv("CHIMPLET_SETTINGS_FILE", "chimplet-settings.json")

# Option paths that may be satisfied by the environment when the settings file is silent
OPTION_ENV_FALLBACKS = {
    "mailchimp.api_key": "MAILCHIMP_API_KEY",
    "mailchimp.list_id": "MAILCHIMP_LIST_ID",
    "mailchimp.data_center": "MAILCHIMP_DC",
    "mailchimp.timeout": "MAILCHIMP_TIMEOUT",
}


def _read_settings_file(settings_file: str) -> Dict[str, Any]:
    if not os.path.exists(settings_file):
        return {}
    try:
        with open(settings_file, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError:
        logger.warning(f"Settings file {settings_file} is corrupted, ignoring it")
        return {}
    return data if isinstance(data, dict) else {}


def get_option(path: str, default: Any = None, settings_file: Optional[str] = None) -> Any:
    """
    Look up an option by dotted path ("mailchimp.api_key").

    The settings file is consulted first, then the environment variable
    registered in OPTION_ENV_FALLBACKS, then `default`.
    """
    node: Any = _read_settings_file(settings_file or SETTINGS_FILE)
    for key in path.split('.'):
        if not isinstance(node, dict) or key not in node:
            node = None
            break
        node = node[key]

    if node not in (None, ""):
        return node

    env_name = OPTION_ENV_FALLBACKS.get(path)
    if env_name:
        env_value = os.getenv(env_name, "").strip()
        if env_value:
            return env_value

    return default


def save_option(path: str, value: Any, settings_file: Optional[str] = None) -> None:
    """Persist an option at a dotted path, creating intermediate sections."""
    settings_file = settings_file or SETTINGS_FILE
    data = _read_settings_file(settings_file)

    node = data
    keys = path.split('.')
    for key in keys[:-1]:
        if not isinstance(node.get(key), dict):
            node[key] = {}
        node = node[key]
    node[keys[-1]] = value

    with open(settings_file, 'w') as f:
        json.dump(data, f, indent=2)
    logger.debug(f"Saved option '{path}' to {settings_file}")


def load_settings(settings_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the caller configuration mapping handed to the facade:

        {"api_key": ..., "user_options": {"timeout": ..., "data_center": ...}}
    """
    api_key = get_option("mailchimp.api_key", "", settings_file=settings_file)
    user_options: Dict[str, Any] = {
        "timeout": float(get_option("mailchimp.timeout", MAILCHIMP_TIMEOUT, settings_file=settings_file)),
        "user_agent": MAILCHIMP_USER_AGENT,
    }

    data_center = get_option("mailchimp.data_center", "", settings_file=settings_file)
    if not data_center and api_key:
        data_center = get_mailchimp_datacenter(api_key)
    if data_center:
        user_options["data_center"] = data_center

    return {
        "api_key": api_key or None,
        "list_id": get_option("mailchimp.list_id", "", settings_file=settings_file) or None,
        "user_options": user_options,
    }


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging (stream + logs/chimplet.log). Called by the entry point only."""
    os.makedirs(LOG_DIR, exist_ok=True)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.FileHandler(os.path.join(LOG_DIR, "chimplet.log")),
            logging.StreamHandler()
        ]
    )

    # Quiet noisy libs
    logging.getLogger("urllib3").setLevel(logging.INFO)
    logging.getLogger("requests").setLevel(logging.INFO)


def validate_configuration(settings: Optional[Dict[str, Any]] = None) -> bool:
    """Check that the values needed to reach the API are present."""
    settings = settings or load_settings()
    missing = []
    if not settings.get("api_key"):
        missing.append("MAILCHIMP_API_KEY")
    if not settings.get("user_options", {}).get("data_center"):
        missing.append("MAILCHIMP_DC")
    if missing:
        logger.error(f"Missing required config values: {', '.join(missing)}")
        return False
    return True

import json
import logging
import os
from typing import Dict, Any, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

CONFIG_FILE_PATH = "config.json"
WEBHOOK_ENV_VAR = "PBANDAI_DISCORD_WEBHOOK"

BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"

DEFAULT_CONFIG: Dict[str, Any] = {
    "sitemap_url": "https://p-bandai.com/us/sitemap-product_1.xml",
    "item_url_template": "https://p-bandai.com/us/item/{id}",
    "state_file": os.path.join("data", "pbandai-state.json"),
    "poll_interval_seconds": 30,
    "error_threshold": 5,
    "backoff_seconds": 60,
    "user_agent": BROWSER_USER_AGENT,
    "timeout": 30,
    "probe_timeout": 10,
    "notify_timeout": 10,
    "max_retries": 3,
    "max_probe_workers": 8,
    "discord_webhook_url": "",
}

_URL_KEYS = ["sitemap_url", "item_url_template"]
_POSITIVE_NUMBER_KEYS = [
    "poll_interval_seconds",
    "backoff_seconds",
    "timeout",
    "probe_timeout",
    "notify_timeout",
]
_POSITIVE_INT_KEYS = ["error_threshold", "max_probe_workers"]


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads the configuration from config.json merged over the defaults.

    A missing or invalid file is never fatal: the defaults are used instead.
    The webhook URL is taken from the PBANDAI_DISCORD_WEBHOOK environment
    variable (or a .env file) when set.
    """
    path = path or CONFIG_FILE_PATH
    config = dict(DEFAULT_CONFIG)

    if not os.path.exists(path):
        logger.info(f"No configuration file at {path}, using defaults")
    else:
        try:
            with open(path, 'r') as f:
                config_data = json.load(f)
            if validate_config(config_data):
                config.update({k: v for k, v in config_data.items() if k in DEFAULT_CONFIG})
                logger.info(f"Successfully loaded configuration from {path}")
            else:
                logger.error(f"Invalid configuration in {path}, using defaults")
        except json.JSONDecodeError as e:
            logger.error(f"Error decoding JSON from {path}: {e}")
        except OSError as e:
            logger.error(f"Could not read configuration file {path}: {e}")

    load_dotenv()
    webhook = os.environ.get(WEBHOOK_ENV_VAR)
    if webhook:
        config["discord_webhook_url"] = webhook.strip()

    return config


def validate_config(config: Dict[str, Any]) -> bool:
    """Validates the structure and content of the configuration."""
    if not isinstance(config, dict):
        logger.error("Configuration must be a dictionary.")
        return False

    for key in config:
        if key not in DEFAULT_CONFIG:
            logger.warning(f"Unknown configuration key '{key}' will be ignored.")

    for key in _URL_KEYS:
        if key in config:
            value = config[key]
            if not isinstance(value, str) or not value.startswith(("http://", "https://")):
                logger.error(f"Value for '{key}' must be an http(s) URL.")
                return False

    if "item_url_template" in config and "{id}" not in config["item_url_template"]:
        logger.error("'item_url_template' must contain an '{id}' placeholder.")
        return False

    for key in _POSITIVE_NUMBER_KEYS:
        if key in config:
            value = config[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                logger.error(f"Value for '{key}' must be a positive number.")
                return False

    for key in _POSITIVE_INT_KEYS:
        if key in config:
            value = config[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                logger.error(f"Value for '{key}' must be a positive integer.")
                return False

    if "max_retries" in config:
        value = config["max_retries"]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            logger.error("Value for 'max_retries' must be a non-negative integer.")
            return False

    for key in ["state_file", "discord_webhook_url"]:
        if key in config and not isinstance(config[key], str):
            logger.error(f"Value for '{key}' must be a string.")
            return False

    if "user_agent" in config:
        if not isinstance(config["user_agent"], str) or not config["user_agent"].strip():
            logger.error("'user_agent' must be a non-empty string.")
            return False

    logger.debug("Configuration validation successful.")
    return True

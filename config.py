# config.py

import os
import yaml
import logging

logger = logging.getLogger(__name__)


def load_config():
    """
    Load configuration from the YAML file specified by CONFIG_PATH environment variable or the default path.

    Returns:
        dict: Parsed configuration dictionary.
    """
    CONFIG_PATH = os.getenv("CONFIG_PATH", "config.yaml")

    if not os.path.exists(CONFIG_PATH):
        logger.error(f"Configuration file '{CONFIG_PATH}' not found.")
        raise FileNotFoundError(f"Configuration file '{CONFIG_PATH}' not found.")

    try:
        with open(CONFIG_PATH, 'r') as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Configuration loaded successfully from '{CONFIG_PATH}'.")
            return config
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file '{CONFIG_PATH}': {e}")
        raise


def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes")


# Load the configuration file
config = load_config()

DEBUG_MODE = _env_flag("DEBUG", config.get("debug", False))

SERVER_SETTINGS = config.get("server", {})
HOST = os.getenv("HOST", SERVER_SETTINGS.get("host", "0.0.0.0"))
PORT = int(os.getenv("PORT", SERVER_SETTINGS.get("port", 9786)))

# Repository registry file, managed through the admin API
REPO_CONFIG_PATH = os.getenv("REPO_CONFIG_PATH", config.get("repo_config_path", "repo-config.yaml"))
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", config.get("admin_token", ""))

# Deployment protocol settings
DEPLOY_SETTINGS = config.get("deploy", {})
DEPLOY_DESCRIPTOR = DEPLOY_SETTINGS.get("descriptor", "docker-compose.yml")
COMPOSE_COMMAND = DEPLOY_SETTINGS.get("compose_command", ["docker", "compose"])
if isinstance(COMPOSE_COMMAND, str):
    COMPOSE_COMMAND = COMPOSE_COMMAND.split()
SETTLE_DELAY = float(DEPLOY_SETTINGS.get("settle_delay", 10))
DEPLOY_TIMEOUT = float(DEPLOY_SETTINGS.get("timeout", 600))
ASYNC_ACK = bool(DEPLOY_SETTINGS.get("async_ack", False))

# Notification settings
NOTIFICATIONS = config.get("notifications", {})
NOTIFY_WEBHOOK_URL = os.getenv("DISCORD_WEBHOOK_URL", NOTIFICATIONS.get("webhook_url", ""))
NOTIFY_MESSAGE_FIELD = NOTIFICATIONS.get("message_field", "content")
NOTIFY_TIMEOUT = float(NOTIFICATIONS.get("timeout", 10))

# Logging settings
LOGGING_SETTINGS = config.get("logging", {})
LOG_DB_PATH = os.getenv("LOG_DB_PATH", LOGGING_SETTINGS.get("db_path", "logs.db"))

if not NOTIFY_WEBHOOK_URL:
    logger.warning("No notification webhook URL configured. Deployment notifications will not be sent.")
if not ADMIN_TOKEN:
    logger.warning("No admin token configured. The admin API is disabled.")

# Log summary of key settings (without sensitive details)
logger.info(f"Repository config path: {REPO_CONFIG_PATH}")
logger.info(f"Deployment descriptor: {DEPLOY_DESCRIPTOR}")
logger.info(f"Compose command: {' '.join(COMPOSE_COMMAND)}")
logger.info(f"Deployment timeout: {DEPLOY_TIMEOUT}s, settle delay: {SETTLE_DELAY}s")
logger.info(f"Acknowledge before deploying: {ASYNC_ACK}")

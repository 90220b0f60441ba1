# dependencies.py

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, status

from config import (
    ADMIN_TOKEN,
    ASYNC_ACK,
    COMPOSE_COMMAND,
    DEPLOY_DESCRIPTOR,
    DEPLOY_TIMEOUT,
    NOTIFY_MESSAGE_FIELD,
    NOTIFY_TIMEOUT,
    NOTIFY_WEBHOOK_URL,
    REPO_CONFIG_PATH,
    SETTLE_DELAY,
)
from deployment import DeploymentExecutor, build_steps
from notifications import Notifications
from registry import RepoRegistry

logger = logging.getLogger(__name__)

registry = RepoRegistry.from_file(REPO_CONFIG_PATH)
executor = DeploymentExecutor(
    steps=build_steps(COMPOSE_COMMAND, SETTLE_DELAY),
    timeout=DEPLOY_TIMEOUT,
    descriptor=DEPLOY_DESCRIPTOR,
)
notifier = Notifications(
    webhook_url=NOTIFY_WEBHOOK_URL,
    message_field=NOTIFY_MESSAGE_FIELD,
    timeout=NOTIFY_TIMEOUT,
)


def get_registry() -> RepoRegistry:
    return registry


def get_executor() -> DeploymentExecutor:
    return executor


def get_notifier() -> Notifications:
    return notifier


def get_async_ack() -> bool:
    return ASYNC_ACK


def get_admin_token(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    if not ADMIN_TOKEN:
        logger.warning("Admin API called but no admin token is configured.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Admin API disabled")
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), ADMIN_TOKEN.encode()):
        logger.warning("Invalid admin token.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")
    return x_admin_token

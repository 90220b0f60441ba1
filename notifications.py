import asyncio
import logging
import requests
from pydantic import BaseModel, ConfigDict
from typing import Optional, Set

from models.deployment import DeploymentOutcome
from models.repo_config import RepoConfig

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 1000


class NotificationMessage(BaseModel):
    """Channel-independent message text. The JSON field name is chosen at send time."""
    model_config = ConfigDict(frozen=True)

    text: str
    success: bool

    @classmethod
    def success_message(cls, outcome: DeploymentOutcome, repo_config: RepoConfig) -> "NotificationMessage":
        text = (
            f"✅ Deployment successful for {outcome.repo_name}\n"
            f"Path: {repo_config.path}\n"
            f"Version: {outcome.version}\n"
            f"Timestamp: {outcome.finished_at.isoformat()}"
        )
        return cls(text=text, success=True)

    @classmethod
    def failure_message(cls, outcome: DeploymentOutcome, repo_config: RepoConfig) -> "NotificationMessage":
        text = (
            f"❌ Deployment failed for {outcome.repo_name}\n"
            f"Path: {repo_config.path}\n"
            f"Error: {outcome.error_message}"
        )
        if outcome.stderr:
            text += f"\nStdErr:```{outcome.stderr[-MAX_OUTPUT_CHARS:]}```"
        return cls(text=text, success=False)

    @classmethod
    def for_outcome(cls, outcome: DeploymentOutcome, repo_config: RepoConfig) -> "NotificationMessage":
        if outcome.success:
            return cls.success_message(outcome, repo_config)
        return cls.failure_message(outcome, repo_config)

    def to_payload(self, field: str = "content") -> dict:
        return {field: self.text}


class Notifications:
    def __init__(self, webhook_url: str = "", message_field: str = "content", timeout: float = 10):
        self.webhook_url = webhook_url
        self.message_field = message_field
        self.timeout = timeout
        self._pending: Set[asyncio.Future] = set()

    def send_message(self, message: NotificationMessage) -> bool:
        """
        Post a message to the configured webhook URL. Failures are logged, never raised or retried.
        """
        if not self.webhook_url:
            logger.debug("Notification webhook URL not configured. Skipping notification.")
            return False
        payload = message.to_payload(self.message_field)
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            if not response.ok:
                logger.error(f"Failed to send notification. Code: {response.status_code}, Resp: {response.text}")
                return False
            logger.info("Notification sent successfully.")
            return True
        except requests.RequestException as e:
            logger.error(f"Exception while sending notification: {e}")
            return False

    def notify(self, outcome: DeploymentOutcome, repo_config: RepoConfig) -> bool:
        """
        Notify about a finished deployment, success or failure.
        """
        message = NotificationMessage.for_outcome(outcome, repo_config)
        return self.send_message(message)

    def dispatch(self, outcome: DeploymentOutcome, repo_config: RepoConfig) -> Optional[asyncio.Future]:
        """
        Fire-and-forget notify() from async code: runs on the loop's default
        executor and returns without waiting for delivery.
        """
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self.notify, outcome, repo_config)
        self._pending.add(future)
        future.add_done_callback(self._finished)
        return future

    def _finished(self, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Notification delivery raised: {future.exception()}")

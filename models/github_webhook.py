from pydantic import BaseModel, ConfigDict
from typing import Optional


class Repository(BaseModel):
    model_config = ConfigDict(extra="ignore")

    full_name: Optional[str] = None


class GitHubWebhook(BaseModel):
    """The subset of a push payload the relay reads. Everything else is ignored."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    ref: Optional[str] = None
    repository: Optional[Repository] = None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw_body: bytes
    signature_header: Optional[str] = None
    event_type: Optional[str] = None
    payload: GitHubWebhook

    @property
    def repo_full_name(self) -> Optional[str]:
        if self.payload.repository is None:
            return None
        return self.payload.repository.full_name or None

from pydantic import BaseModel, ConfigDict, field_validator
from typing import Optional


class RepoConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    secret: str
    branch: Optional[str] = None

    @field_validator("path", "secret")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("branch")
    @classmethod
    def blank_branch_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    def masked(self) -> dict:
        """Representation safe to return from the admin API."""
        return {"path": self.path, "secret": "***", "branch": self.branch}

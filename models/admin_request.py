from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class RepoConfigRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_name: str = Field(..., alias="repoName", min_length=1)
    path: str = Field(..., min_length=1)
    secret: str = Field(..., min_length=1)
    branch: Optional[str] = None


class RepoDeleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_name: str = Field(..., alias="repoName", min_length=1)

from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional


class StepResult(BaseModel):
    name: str
    success: bool
    returncode: Optional[int] = None
    stdout: str = ""
    stderr: str = ""


class DeploymentOutcome(BaseModel):
    repo_name: str
    success: bool
    version: int
    stdout: str = ""
    stderr: str = ""
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: datetime
    steps: List[StepResult] = Field(default_factory=list)

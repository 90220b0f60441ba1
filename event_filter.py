# event_filter.py

import enum
from typing import Optional

from models.repo_config import RepoConfig

BRANCH_REF_PREFIX = "refs/heads/"


class Decision(str, enum.Enum):
    DEPLOY = "deploy"
    IGNORE_EVENT = "ignore_event"
    IGNORE_BRANCH = "ignore_branch"


def branch_from_ref(ref: Optional[str]) -> Optional[str]:
    if ref is None:
        return None
    if ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX):]
    return ref


def should_deploy(event_type: Optional[str], ref: Optional[str], repo_config: RepoConfig) -> Decision:
    """Decide whether a verified event triggers a deployment. No side effects."""
    if event_type != "push":
        return Decision.IGNORE_EVENT

    if repo_config.branch and branch_from_ref(ref) != repo_config.branch:
        return Decision.IGNORE_BRANCH

    return Decision.DEPLOY

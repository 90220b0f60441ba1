# routers/admin.py

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from dependencies import get_admin_token, get_executor, get_registry
from deployment import DeploymentExecutor
from models.admin_request import RepoConfigRequest, RepoDeleteRequest
from models.repo_config import RepoConfig
from registry import RegistryPersistenceError, RepoRegistry

router = APIRouter(prefix="/admin", dependencies=[Depends(get_admin_token)])
logger = logging.getLogger(__name__)


def persistence_failed(repo_name: str, e: RegistryPersistenceError) -> HTTPException:
    logger.error(f"Registry change for {repo_name} was not applied: {str(e)}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Could not save repository configuration"
    )


@router.get("/status", summary="Registry and deployment status")
def registry_status(
        registry: RepoRegistry = Depends(get_registry),
        executor: DeploymentExecutor = Depends(get_executor)
):
    names = registry.names()
    return {
        "repositories": len(names),
        "deploying": [name for name in names if executor.is_deploying(name)],
    }


@router.get("/repos", summary="List configured repositories")
def list_repos(registry: RepoRegistry = Depends(get_registry)):
    return {name: cfg.masked() for name, cfg in registry.snapshot().items()}


@router.post("/repos", summary="Add or update a repository")
@router.put("/repos", summary="Add or update a repository", include_in_schema=False)
def add_update_repo(request: RepoConfigRequest, registry: RepoRegistry = Depends(get_registry)):
    try:
        repo_config = RepoConfig(path=request.path, secret=request.secret, branch=request.branch)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid request: {e}")

    try:
        registry.upsert(request.repo_name, repo_config)
    except RegistryPersistenceError as e:
        raise persistence_failed(request.repo_name, e)
    return {"success": True, "message": f"Repository {request.repo_name} configured successfully"}


@router.delete("/repos", summary="Remove a repository")
def delete_repo(request: RepoDeleteRequest, registry: RepoRegistry = Depends(get_registry)):
    try:
        removed = registry.remove(request.repo_name)
    except RegistryPersistenceError as e:
        raise persistence_failed(request.repo_name, e)

    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Repository {request.repo_name} not found"
        )
    return {"success": True, "message": f"Repository {request.repo_name} removed successfully"}

import asyncio
import json
import logging
import traceback
from typing import Optional, Set
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from dependencies import get_async_ack, get_executor, get_notifier, get_registry
from deployment import DeploymentExecutor
from event_filter import Decision, branch_from_ref, should_deploy
from models.deployment import DeploymentOutcome
from models.github_webhook import GitHubWebhook, WebhookEvent
from models.repo_config import RepoConfig
from notifications import Notifications
from registry import RepoRegistry
from utils import verify_signature

router = APIRouter()
logger = logging.getLogger(__name__)

# Deployments acknowledged before completion, kept referenced until done
background_deployments: Set[asyncio.Task] = set()


def parse_payload(body_bytes: bytes, content_type: str) -> GitHubWebhook:
    """
    Parse a JSON body, or GitHub's form encoding (payload=<json>). Raises ValueError.
    """
    if "application/x-www-form-urlencoded" in content_type:
        form_data = parse_qs(body_bytes.decode("utf-8"))
        if "payload" not in form_data:
            raise ValueError("No payload parameter in form data")
        raw = form_data["payload"][0]
    else:
        raw = body_bytes

    try:
        data = json.loads(raw)
    except RecursionError:
        raise ValueError("Payload is nested too deeply")

    if not isinstance(data, dict):
        raise ValueError("Payload must be a JSON object")
    return GitHubWebhook(**data)


async def deploy_and_notify(
        executor: DeploymentExecutor,
        notifier: Notifications,
        repo_config: RepoConfig,
        repo_name: str
) -> DeploymentOutcome:
    outcome = await executor.deploy(repo_config, repo_name)
    notifier.dispatch(outcome, repo_config)
    return outcome


async def run_deployment(
        executor: DeploymentExecutor,
        notifier: Notifications,
        repo_config: RepoConfig,
        repo_name: str
):
    """
    Background variant used when the webhook is acknowledged before deploying.
    """
    try:
        await deploy_and_notify(executor, notifier, repo_config, repo_name)
    except Exception as e:
        error_trace = traceback.format_exc()
        logger.error(f"Background deployment for {repo_name} crashed: {str(e)}\n{error_trace}")


@router.post("/webhook", summary="GitHub Webhook Endpoint")
async def handle_webhook(
        request: Request,
        x_hub_signature_256: Optional[str] = Header(None),
        x_github_event: Optional[str] = Header(None),
        registry: RepoRegistry = Depends(get_registry),
        executor: DeploymentExecutor = Depends(get_executor),
        notifier: Notifications = Depends(get_notifier),
        async_ack: bool = Depends(get_async_ack)
):
    logger.info("Webhook endpoint was called.")
    body_bytes = await request.body()

    # 1. Parse payload.
    content_type = request.headers.get("Content-Type", "")
    try:
        payload = parse_payload(body_bytes, content_type)
    except ValueError as e:
        logger.error(f"Could not decode webhook payload: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload"
        )

    event = WebhookEvent(
        raw_body=body_bytes,
        signature_header=x_hub_signature_256,
        event_type=x_github_event,
        payload=payload,
    )

    # 2. Resolve the repository.
    repo_full_name = event.repo_full_name
    if not repo_full_name:
        logger.error("Repository name not found in payload.")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Repository not specified"
        )

    repo_config = registry.lookup(repo_full_name)
    if repo_config is None:
        logger.warning(f"No configuration found for repository: {repo_full_name}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Repository not configured"
        )

    # 3. Verify signature with the repository's secret.
    if not verify_signature(event.raw_body, event.signature_header, repo_config.secret):
        logger.warning(f"Rejected webhook for {repo_full_name}: missing or invalid signature.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

    # 4. Filter by event type and branch.
    decision = should_deploy(event.event_type, payload.ref, repo_config)
    if decision is Decision.IGNORE_EVENT:
        event_type = event.event_type or "missing event type"
        logger.info(f"Ignoring event: {event_type}")
        return {"message": f"Ignored event: {event_type}"}
    if decision is Decision.IGNORE_BRANCH:
        branch = branch_from_ref(payload.ref) or "no branch"
        message = f"Ignored push to {branch}, only deploying {repo_config.branch}"
        logger.info(f"{message} for {repo_full_name}.")
        return {"message": message}

    logger.info(f"Received valid webhook for {repo_full_name}, deploying...")

    # 5. Deploy.
    if async_ack:
        task = asyncio.create_task(run_deployment(executor, notifier, repo_config, repo_full_name))
        background_deployments.add(task)
        task.add_done_callback(background_deployments.discard)
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"message": f"Deployment started for {repo_full_name}"}
        )

    try:
        outcome = await deploy_and_notify(executor, notifier, repo_config, repo_full_name)
    except Exception as e:
        error_trace = traceback.format_exc()
        logger.error(f"Deployment for {repo_full_name} crashed: {str(e)}\n{error_trace}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Deployment failed for {repo_full_name}"
        )

    if not outcome.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": f"Deployment failed for {repo_full_name}: {outcome.error_message}",
                "version": outcome.version,
            }
        )

    return {"message": f"Deployment successful for {repo_full_name}", "version": outcome.version}

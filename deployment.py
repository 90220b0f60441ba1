# deployment.py

import asyncio
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from models.deployment import DeploymentOutcome, StepResult
from models.repo_config import RepoConfig
from utils import CommandResult, run_command

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTOR = "docker-compose.yml"
DEFAULT_COMPOSE_COMMAND = ("docker", "compose")
DEFAULT_SETTLE_DELAY = 10.0
DEFAULT_TIMEOUT = 600.0
VERSION_ENV_VAR = "DEPLOYMENT_VERSION"

Runner = Callable[[List[str], str, Optional[Dict[str, str]]], Awaitable[CommandResult]]

_version_lock = threading.Lock()
_last_version = 0


def next_deployment_version() -> int:
    """Millisecond timestamp, strictly increasing within this process."""
    global _last_version
    with _version_lock:
        _last_version = max(int(time.time() * 1000), _last_version + 1)
        return _last_version


@dataclass
class DeployContext:
    repo_name: str
    repo_config: RepoConfig
    version: int
    descriptor: str
    expected_services: List[str] = field(default_factory=list)
    results: List[StepResult] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.repo_config.path


def exited_cleanly(result: CommandResult, ctx: DeployContext) -> bool:
    return result.returncode == 0


@dataclass(frozen=True)
class DeployStep:
    """
    One gate of the deployment protocol.

    A step either runs a command (argv built from the context) or, when
    command is None, evaluates check against the context without spawning
    anything. description is formatted with the context and becomes the
    outcome's error message when the step fails.
    """
    name: str
    description: str
    command: Optional[Callable[[DeployContext], List[str]]] = None
    check: Optional[Callable[[DeployContext], bool]] = None
    succeeded: Callable[[CommandResult, DeployContext], bool] = exited_cleanly
    collect: Optional[Callable[[CommandResult, DeployContext], None]] = None
    env: Optional[Callable[[DeployContext], Dict[str, str]]] = None
    delay: float = 0.0

    def describe(self, ctx: DeployContext) -> str:
        return self.description.format(
            repo=ctx.repo_name, path=ctx.path, descriptor=ctx.descriptor, version=ctx.version
        )


def _record_services(result: CommandResult, ctx: DeployContext) -> None:
    ctx.expected_services = [line.strip() for line in result.stdout.splitlines() if line.strip()]


def _services_running(result: CommandResult, ctx: DeployContext) -> bool:
    if result.returncode != 0:
        return False
    running = {line.strip() for line in result.stdout.splitlines() if line.strip()}
    if not ctx.expected_services:
        return bool(running)
    missing = [name for name in ctx.expected_services if name not in running]
    if missing:
        logger.warning(f"Services not running for {ctx.repo_name}: {', '.join(missing)}")
    return not missing


def build_steps(
        compose_command=DEFAULT_COMPOSE_COMMAND,
        settle_delay: float = DEFAULT_SETTLE_DELAY
) -> List[DeployStep]:
    """The fixed six-step protocol, in order."""
    compose = list(compose_command)

    def compose_args(*args: str) -> Callable[[DeployContext], List[str]]:
        return lambda ctx: compose + ["-f", ctx.descriptor, *args]

    return [
        DeployStep(
            name="enter_path",
            description="Repository path '{path}' does not exist",
            check=lambda ctx: os.path.isdir(ctx.path),
        ),
        DeployStep(
            name="git_pull",
            description="git pull failed",
            command=lambda ctx: ["git", "pull"],
        ),
        DeployStep(
            name="descriptor_exists",
            description="{descriptor} not found",
            check=lambda ctx: os.path.isfile(os.path.join(ctx.path, ctx.descriptor)),
        ),
        DeployStep(
            name="validate_descriptor",
            description="Invalid {descriptor}",
            command=compose_args("config", "--services"),
            collect=_record_services,
        ),
        DeployStep(
            name="build_and_restart",
            description="Build and restart failed for version {version}",
            command=compose_args("up", "-d", "--build", "--remove-orphans"),
            env=lambda ctx: {VERSION_ENV_VAR: str(ctx.version)},
        ),
        DeployStep(
            name="verify_running",
            description="Deployment verification failed",
            command=compose_args("ps", "--status", "running", "--services"),
            succeeded=_services_running,
            delay=settle_delay,
        ),
    ]


class DeploymentExecutor:
    """
    Runs the deployment protocol for one repository at a time per name.

    A second deploy() for a repository that is already deploying waits for
    the first to finish. Different repositories do not block each other.
    """

    def __init__(
            self,
            steps: Optional[List[DeployStep]] = None,
            runner: Runner = run_command,
            timeout: float = DEFAULT_TIMEOUT,
            descriptor: str = DEFAULT_DESCRIPTOR,
            sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.steps = steps if steps is not None else build_steps()
        self.timeout = timeout
        self.descriptor = descriptor
        self._runner = runner
        self._sleep = sleep
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, repo_name: str) -> asyncio.Lock:
        return self._locks.setdefault(repo_name, asyncio.Lock())

    def is_deploying(self, repo_name: str) -> bool:
        lock = self._locks.get(repo_name)
        return lock is not None and lock.locked()

    async def deploy(self, repo_config: RepoConfig, repo_name: str) -> DeploymentOutcome:
        lock = self._lock_for(repo_name)
        if lock.locked():
            logger.info(f"Deployment already in progress for {repo_name}. Waiting for it to finish.")
        async with lock:
            return await self._deploy_locked(repo_config, repo_name)

    async def _deploy_locked(self, repo_config: RepoConfig, repo_name: str) -> DeploymentOutcome:
        ctx = DeployContext(
            repo_name=repo_name,
            repo_config=repo_config,
            version=next_deployment_version(),
            descriptor=self.descriptor,
        )
        started_at = datetime.now(timezone.utc)
        logger.info(f"=== Deploying {repo_name} (version {ctx.version}) from {repo_config.path} ===")

        try:
            error_message = await asyncio.wait_for(self._run_steps(ctx), timeout=self.timeout)
        except asyncio.TimeoutError:
            error_message = f"Deployment timed out after {self.timeout:g}s"
            logger.error(f"{error_message} for {repo_name}.")

        outcome = DeploymentOutcome(
            repo_name=repo_name,
            success=error_message is None,
            version=ctx.version,
            stdout="\n".join(r.stdout for r in ctx.results if r.stdout),
            stderr="\n".join(r.stderr for r in ctx.results if r.stderr),
            error_message=error_message,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            steps=ctx.results,
        )
        if outcome.success:
            logger.info(f"=== Deployment successful for {repo_name} (version {ctx.version}) ===")
        else:
            logger.error(f"Deployment failed for {repo_name}: {error_message}")
        return outcome

    async def _run_steps(self, ctx: DeployContext) -> Optional[str]:
        """Returns None when every step passed, otherwise the failing step's message."""
        total = len(self.steps)
        for index, step in enumerate(self.steps, start=1):
            if step.delay:
                logger.info(f"Waiting {step.delay:g}s before '{step.name}'.")
                await self._sleep(step.delay)

            logger.info(f"[{ctx.repo_name}] Step {index}/{total}: {step.name}")

            if step.command is None:
                passed = step.check(ctx) if step.check is not None else True
                ctx.results.append(StepResult(name=step.name, success=passed))
                if not passed:
                    return step.describe(ctx)
                continue

            argv = step.command(ctx)
            env = step.env(ctx) if step.env is not None else None
            try:
                result = await self._runner(argv, ctx.path, env)
            except OSError as e:
                ctx.results.append(StepResult(name=step.name, success=False, stderr=str(e)))
                return f"{step.describe(ctx)}: {e}"

            passed = step.succeeded(result, ctx)
            ctx.results.append(StepResult(
                name=step.name,
                success=passed,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            ))
            if result.stderr.strip():
                logger.warning(f"'{step.name}' stderr:\n{result.stderr}")
            if not passed:
                logger.error(f"'{step.name}' failed (exit {result.returncode}).")
                return step.describe(ctx)
            if step.collect is not None:
                step.collect(result, ctx)

        return None

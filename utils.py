# utils.py

import asyncio
import hmac
import hashlib
import logging
import os
from typing import Dict, List, NamedTuple, Optional, Union

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(request_body: bytes, secret: Union[str, bytes]) -> str:
    key = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)
    mac = hmac.new(key, msg=request_body, digestmod=hashlib.sha256)
    return SIGNATURE_PREFIX + mac.hexdigest()


def verify_signature(request_body: bytes, signature: Optional[str], secret: Union[str, bytes, None]) -> bool:
    """
    Check an X-Hub-Signature-256 value against the HMAC of the raw body.
    Never raises: anything missing or malformed counts as a mismatch.
    """
    if not signature:
        logger.warning("No signature provided.")
        return False

    if not secret:
        logger.warning("No secret configured for signature verification.")
        return False

    try:
        expected = compute_signature(request_body, secret)
        is_valid = hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid signature format: {e}")
        return False

    if is_valid:
        logger.debug("Webhook signature verified successfully.")
    else:
        logger.warning("Webhook signature verification failed.")
    return is_valid


class CommandResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str


async def kill_process(process: asyncio.subprocess.Process, command: List[str]) -> None:
    logger.warning(f"Killing command {command} (pid {process.pid}).")
    if process.returncode is None:
        process.kill()
    await process.wait()


async def run_command(
        command: List[str],
        cwd: str,
        env: Optional[Dict[str, str]] = None
) -> CommandResult:
    """
    Run an argument vector without a shell and capture its output.

    extra variables in env are layered over the current environment. If the
    awaiting task is cancelled (e.g. by a timeout) the child is killed before
    the cancellation propagates.
    """
    logger.debug(f"Executing command: {command} in {cwd}")
    child_env = None
    if env:
        child_env = {**os.environ, **env}

    # Spawn in its own task so a cancellation arriving mid-spawn can still reap the child.
    spawn = asyncio.create_task(asyncio.create_subprocess_exec(
        *command,
        cwd=cwd,
        env=child_env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    ))
    try:
        process = await asyncio.shield(spawn)
    except asyncio.CancelledError:
        if not spawn.done():
            await asyncio.wait([spawn])
        if not spawn.cancelled() and spawn.exception() is None:
            await kill_process(spawn.result(), command)
        raise

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        await kill_process(process, command)
        raise

    stdout_decoded = stdout.decode("utf-8", errors="replace").strip()
    stderr_decoded = stderr.decode("utf-8", errors="replace").strip()

    if stdout_decoded:
        logger.debug(f"Command stdout: {stdout_decoded}")
    if stderr_decoded:
        logger.debug(f"Command stderr: {stderr_decoded}")
    logger.debug(f"Command {command} exited with {process.returncode}")

    return CommandResult(process.returncode, stdout_decoded, stderr_decoded)

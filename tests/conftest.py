"""Shared fixtures.

config.py reads its YAML file at import time, so a throwaway config is
written and exported before any application module is imported.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from typing import Dict, List, Optional

import pytest

_CONFIG_DIR = tempfile.mkdtemp(prefix="deploy-relay-tests-")
_CONFIG_PATH = os.path.join(_CONFIG_DIR, "config.yaml")
with open(_CONFIG_PATH, "w") as _f:
    _f.write(
        "deploy:\n"
        "  settle_delay: 0\n"
        "  timeout: 30\n"
        "notifications:\n"
        "  message_field: content\n"
    )

os.environ["CONFIG_PATH"] = _CONFIG_PATH
os.environ["REPO_CONFIG_PATH"] = os.path.join(_CONFIG_DIR, "repo-config.yaml")
os.environ["LOG_DB_PATH"] = ""
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["DISCORD_WEBHOOK_URL"] = ""

from deployment import DeploymentExecutor, build_steps  # noqa: E402
from models.repo_config import RepoConfig  # noqa: E402
from utils import CommandResult  # noqa: E402

ADMIN_TOKEN = "test-admin-token"
SECRET = "s3cret"


def command_key(argv: List[str]) -> str:
    """Name the protocol command an argv belongs to."""
    if argv[:1] == ["git"]:
        return "pull"
    for word in ("config", "up", "ps"):
        if word in argv:
            return word
    return argv[0]


DEFAULT_RESPONSES = {
    "pull": CommandResult(0, "Already up to date.", ""),
    "config": CommandResult(0, "web\nworker", ""),
    "up": CommandResult(0, "", "Container web Started"),
    "ps": CommandResult(0, "web\nworker", ""),
}


class FakeRunner:
    """Stands in for utils.run_command and records every spawn."""

    def __init__(self, responses: Optional[Dict[str, CommandResult]] = None, delay: float = 0.0):
        self.responses = dict(DEFAULT_RESPONSES)
        self.responses.update(responses or {})
        self.delay = delay
        self.hang_on: Optional[str] = None
        self.calls: List[tuple] = []
        self.active: Dict[str, int] = {}
        self.max_active: Dict[str, int] = {}
        self.active_total = 0
        self.max_active_total = 0

    @property
    def keys(self) -> List[str]:
        return [command_key(argv) for argv, _, _ in self.calls]

    async def __call__(self, argv, cwd, env=None):
        self.calls.append((list(argv), cwd, env))
        key = command_key(argv)
        self.active[cwd] = self.active.get(cwd, 0) + 1
        self.max_active[cwd] = max(self.max_active.get(cwd, 0), self.active[cwd])
        self.active_total += 1
        self.max_active_total = max(self.max_active_total, self.active_total)
        try:
            if self.hang_on == key:
                await asyncio.sleep(60)
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.responses[key]
        finally:
            self.active[cwd] -= 1
            self.active_total -= 1


class FakeSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)


class FakeNotifier:
    """Records dispatched outcomes instead of posting them."""

    def __init__(self):
        self.dispatched: List[tuple] = []

    def dispatch(self, outcome, repo_config):
        self.dispatched.append((outcome, repo_config))

    def notify(self, outcome, repo_config):
        self.dispatched.append((outcome, repo_config))
        return True


@pytest.fixture
def repo_dir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    (path / "docker-compose.yml").write_text("services:\n  web:\n    image: nginx\n")
    return path


@pytest.fixture
def repo_config(repo_dir) -> RepoConfig:
    return RepoConfig(path=str(repo_dir), secret=SECRET, branch="main")


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def executor(runner, fake_sleep) -> DeploymentExecutor:
    return DeploymentExecutor(
        steps=build_steps(settle_delay=10),
        runner=runner,
        timeout=30,
        sleep=fake_sleep,
    )

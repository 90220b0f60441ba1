"""HTTP tests for the /admin/repos registry API."""

from __future__ import annotations

import pytest
import yaml
from fastapi.testclient import TestClient

import dependencies
from conftest import ADMIN_TOKEN
from dependencies import get_executor, get_registry
from main import app
from models.repo_config import RepoConfig
from registry import RepoRegistry

AUTH = {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def registry_path(tmp_path):
    return tmp_path / "repos.yaml"


@pytest.fixture
def registry(registry_path) -> RepoRegistry:
    registry = RepoRegistry(path=str(registry_path))
    registry.upsert("acme/web", RepoConfig(path="/srv/web", secret="s3cret", branch="main"))
    return registry


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.mark.parametrize("headers", [{}, {"X-Admin-Token": "wrong"}])
def test_requires_admin_token(client, headers) -> None:
    assert client.get("/admin/repos", headers=headers).status_code == 401


def test_disabled_without_configured_token(client, monkeypatch) -> None:
    monkeypatch.setattr(dependencies, "ADMIN_TOKEN", "")
    assert client.get("/admin/repos", headers=AUTH).status_code == 503


def test_list_masks_secrets(client) -> None:
    response = client.get("/admin/repos", headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"acme/web": {"path": "/srv/web", "secret": "***", "branch": "main"}}


def test_post_adds_and_persists(client, registry, registry_path) -> None:
    response = client.post(
        "/admin/repos",
        headers=AUTH,
        json={"repoName": "acme/api", "path": "/srv/api", "secret": "api-secret"},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert registry.lookup("acme/api") == RepoConfig(path="/srv/api", secret="api-secret")
    assert "acme/api" in yaml.safe_load(registry_path.read_text())


def test_put_updates_existing(client, registry) -> None:
    response = client.put(
        "/admin/repos",
        headers=AUTH,
        json={"repoName": "acme/web", "path": "/srv/web2", "secret": "new", "branch": "release"},
    )

    assert response.status_code == 200
    assert registry.lookup("acme/web").branch == "release"


@pytest.mark.parametrize(
    "body",
    [
        {"path": "/srv/api", "secret": "x"},
        {"repoName": "acme/api", "secret": "x"},
        {"repoName": "acme/api", "path": "/srv/api", "secret": ""},
    ],
)
def test_post_rejects_missing_fields(client, registry, body) -> None:
    response = client.post("/admin/repos", headers=AUTH, json=body)

    assert response.status_code == 422
    assert registry.lookup("acme/api") is None


def test_post_rejects_blank_path(client, registry) -> None:
    response = client.post(
        "/admin/repos", headers=AUTH, json={"repoName": "acme/api", "path": "   ", "secret": "x"}
    )

    assert response.status_code == 400
    assert registry.lookup("acme/api") is None


def test_delete_removes(client, registry) -> None:
    response = client.request("DELETE", "/admin/repos", headers=AUTH, json={"repoName": "acme/web"})

    assert response.status_code == 200
    assert registry.lookup("acme/web") is None


def test_delete_unknown_is_404(client) -> None:
    response = client.request("DELETE", "/admin/repos", headers=AUTH, json={"repoName": "acme/none"})

    assert response.status_code == 404
    assert response.json() == {"detail": "Repository acme/none not found"}


def test_post_is_500_when_registry_cannot_be_saved(client, registry, registry_path) -> None:
    registry_path.unlink()
    registry_path.mkdir()

    response = client.post(
        "/admin/repos",
        headers=AUTH,
        json={"repoName": "acme/api", "path": "/srv/api", "secret": "api-secret"},
    )

    assert response.status_code == 500
    assert response.json() == {"detail": "Could not save repository configuration"}
    assert registry.lookup("acme/api") is None
    assert registry.names() == ["acme/web"]


def test_unwritable_registry_location_is_500(tmp_path) -> None:
    registry = RepoRegistry(
        {"acme/web": RepoConfig(path="/srv/web", secret="s3cret")},
        path=str(tmp_path / "missing" / "repos.yaml"),
    )
    app.dependency_overrides[get_registry] = lambda: registry
    try:
        with TestClient(app) as test_client:
            added = test_client.post(
                "/admin/repos",
                headers=AUTH,
                json={"repoName": "acme/api", "path": "/srv/api", "secret": "api-secret"},
            )
            removed = test_client.request(
                "DELETE", "/admin/repos", headers=AUTH, json={"repoName": "acme/web"}
            )
    finally:
        app.dependency_overrides.clear()

    assert added.status_code == 500
    assert removed.status_code == 500
    assert registry.names() == ["acme/web"]


class BusyExecutor:
    def __init__(self, *busy):
        self.busy = set(busy)

    def is_deploying(self, repo_name: str) -> bool:
        return repo_name in self.busy


def test_status_requires_admin_token(client) -> None:
    assert client.get("/admin/status").status_code == 401


def test_status_reports_repositories_and_deployments(client, registry) -> None:
    registry.upsert("acme/api", RepoConfig(path="/srv/api", secret="other"))
    app.dependency_overrides[get_executor] = lambda: BusyExecutor("acme/api")

    response = client.get("/admin/status", headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"repositories": 2, "deploying": ["acme/api"]}

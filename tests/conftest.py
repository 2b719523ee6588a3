"""Shared pytest fixtures for upstream tests."""

import time

import httpx
import pytest
import yaml

from upstream.kinds import License, default_registry

LICENSE_ID = "2kDqVt9fX3y"


# ============================================================================
# Documents
# ============================================================================


def application_yaml(name: str = "my-app", title: str = "My App") -> bytes:
    return yaml.safe_dump({
        "apiVersion": "kots.io/v1beta1",
        "kind": "Application",
        "metadata": {"name": name},
        "spec": {"title": title, "icon": "https://example.test/icon.png"},
    }).encode()


def config_yaml(items: list[dict]) -> bytes:
    return yaml.safe_dump({
        "apiVersion": "kots.io/v1beta1",
        "kind": "Config",
        "metadata": {"name": "config"},
        "spec": {"groups": [{"name": "settings", "title": "Settings", "items": items}]},
    }).encode()


def deployment_yaml(name: str, image: str, init_image: str | None = None) -> bytes:
    pod_spec = {"containers": [{"name": name, "image": image}]}
    if init_image:
        pod_spec["initContainers"] = [{"name": "init", "image": init_image}]
    return yaml.safe_dump({
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name},
        "spec": {"template": {"spec": pod_spec}},
    }).encode()


def license_document(endpoint: str = "https://replicated.test") -> dict:
    return {
        "apiVersion": "kots.io/v1beta1",
        "kind": "License",
        "metadata": {"name": "customer"},
        "spec": {
            "licenseID": LICENSE_ID,
            "appSlug": "my-app",
            "endpoint": endpoint,
            "entitlements": {"seats": {"title": "Seats", "value": 10, "valueType": "Integer"}},
        },
    }


# ============================================================================
# Transports
# ============================================================================


def stalled_handler(request: httpx.Request) -> httpx.Response:
    """Answer nothing until the request's read timeout has passed, then time out."""
    read_timeout = request.extensions["timeout"]["read"]
    time.sleep(read_timeout + 0.05)
    raise httpx.ReadTimeout("timed out", request=request)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def license() -> License:
    return License.from_document(license_document())


@pytest.fixture
def license_file(tmp_path):
    path = tmp_path / "license.yaml"
    path.write_text(yaml.safe_dump(license_document()))
    return path


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def mock_client():
    """Build an httpx.Client whose requests go to ``handler``."""
    clients = []

    def factory(handler) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


@pytest.fixture
def wsgi_client():
    """Build an httpx.Client that talks to a Flask app in-process."""
    clients = []

    def factory(app) -> httpx.Client:
        client = httpx.Client(transport=httpx.WSGITransport(app=app))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()

"""End-to-end tests against in-process fakes of the release service and a registry."""

import time

import pytest
import yaml

from tests.conftest import LICENSE_ID, application_yaml, config_yaml, deployment_yaml, stalled_handler
from tests.fake_server import create_registry_app, create_release_app, make_release_archive
from upstream.errors import (
    AccessDenied,
    FetchCancelled,
    InvalidURI,
    MissingCredential,
    TemplateRenderFailure,
    UpstreamUnavailable,
)
from upstream.kinds import PLACEHOLDER_APP_NAME, License
from upstream.lifecycle import CancelToken, Retrieval, RetrievalState
from upstream.pull import (
    CONFIG_VALUES_PATH,
    LICENSE_PATH,
    can_pull_upstream,
    fetch_upstream,
    pull_application_metadata,
    pull_upstream,
)


def release_files(config_items=None):
    files = {
        "my-app-1.0/manifests/app.yaml": application_yaml("my-app", "My App"),
        "my-app-1.0/manifests/web.yaml": deployment_yaml("web", "registry.test/org/web:1.0"),
        "my-app-1.0/manifests/worker/worker.yaml": deployment_yaml(
            "worker", "registry.test/org/secret:2.0", init_image="registry.test/org/web:1.0"
        ),
    }
    if config_items is not None:
        files["my-app-1.0/manifests/config.yaml"] = config_yaml(config_items)
    return files


@pytest.fixture
def release_app():
    archive = make_release_archive(
        release_files([{"name": "item", "type": "text", "value": "foo"}]),
        dirs=("my-app-1.0", "my-app-1.0/manifests"),
    )
    return create_release_app({"my-app": archive, "my-app/beta": archive}, license_id=LICENSE_ID)


def test_fetch_materializes_release(release_app, wsgi_client, license):
    retrieval = Retrieval("replicated://my-app/beta")
    upstream = fetch_upstream(
        "replicated://my-app/beta", license=license, client=wsgi_client(release_app), retrieval=retrieval
    )

    assert upstream.name == "my-app"
    assert upstream.type == "replicated"
    assert upstream.update_cursor == "7"
    assert upstream.version_label == "1.0.0"
    assert [f.path for f in upstream.files] == [
        "app.yaml",
        "web.yaml",
        "worker/worker.yaml",
        "config.yaml",
        CONFIG_VALUES_PATH,
        LICENSE_PATH,
    ]

    config_values = yaml.safe_load(upstream.get_file(CONFIG_VALUES_PATH).content)
    assert config_values["kind"] == "ConfigValues"
    assert config_values["metadata"]["name"] == "my-app"
    assert config_values["spec"]["values"] == {"item": "foo"}

    written_license = yaml.safe_load(upstream.get_file(LICENSE_PATH).content)
    assert written_license["spec"]["licenseID"] == LICENSE_ID

    assert release_app.config["requests"] == [("HEAD", "/release/my-app/beta"), ("GET", "/release/my-app/beta")]
    assert retrieval.history == [
        RetrievalState.IDLE,
        RetrievalState.RESOLVED,
        RetrievalState.PROBING,
        RetrievalState.DOWNLOADING,
        RetrievalState.CLASSIFYING,
        RetrievalState.DEFAULTING,
        RetrievalState.NORMALIZING,
        RetrievalState.DONE,
    ]


def test_rejected_license_never_downloads(release_app, wsgi_client):
    wrong = License(license_id="someone-else", endpoint="https://replicated.test")
    retrieval = Retrieval("replicated://my-app")

    with pytest.raises(AccessDenied) as ei:
        fetch_upstream("replicated://my-app", license=wrong, client=wsgi_client(release_app), retrieval=retrieval)

    assert release_app.config["requests"] == [("HEAD", "/release/my-app")]
    assert retrieval.state is RetrievalState.FAILED
    assert retrieval.error is ei.value
    assert ei.value.stage == "probing"


def test_unknown_channel(release_app, wsgi_client, license):
    with pytest.raises(UpstreamUnavailable) as ei:
        fetch_upstream("replicated://my-app/nightly", license=license, client=wsgi_client(release_app))
    assert ei.value.code == 404


def test_license_required_for_download():
    with pytest.raises(MissingCredential):
        fetch_upstream("replicated://my-app")


def test_unsupported_scheme(tmp_path):
    with pytest.raises(InvalidURI):
        fetch_upstream("helm://stable/nginx", local_path=tmp_path)


def test_local_release_without_app_or_config(tmp_path):
    (tmp_path / "wrap" / "k8s").mkdir(parents=True)
    (tmp_path / "wrap" / "k8s" / "web.yaml").write_bytes(deployment_yaml("web", "nginx"))
    (tmp_path / "wrap" / "README.md").write_bytes(b"# readme\n")
    retrieval = Retrieval("replicated://my-app")

    upstream = fetch_upstream("replicated://my-app", local_path=tmp_path, retrieval=retrieval)

    assert upstream.name == PLACEHOLDER_APP_NAME
    assert upstream.update_cursor == "-1"
    assert sorted(f.path for f in upstream.files) == ["README.md", "k8s/web.yaml"]
    assert RetrievalState.DEFAULTING not in retrieval.history
    assert retrieval.state is RetrievalState.DONE


def test_render_failure_aborts(tmp_path):
    (tmp_path / "config.yaml").write_bytes(config_yaml([{"name": "bad", "value": "{{ Nope() }}"}]))
    retrieval = Retrieval("replicated://my-app")

    with pytest.raises(TemplateRenderFailure):
        fetch_upstream("replicated://my-app", local_path=tmp_path, retrieval=retrieval)

    assert retrieval.state is RetrievalState.FAILED
    assert retrieval.error.stage == "defaulting"


def test_cancelled_run_returns_nothing(release_app, wsgi_client, license):
    cancel = CancelToken()
    cancel.cancel()
    with pytest.raises(FetchCancelled):
        fetch_upstream("replicated://my-app", license=license, client=wsgi_client(release_app), cancel=cancel)
    assert release_app.config["requests"] == []


def test_deadline_bounds_requests_in_flight(mock_client, license):
    retrieval = Retrieval("replicated://my-app")
    start = time.monotonic()
    with pytest.raises(FetchCancelled):
        fetch_upstream(
            "replicated://my-app",
            license=license,
            client=mock_client(stalled_handler),
            cancel=CancelToken(deadline=0.2),
            retrieval=retrieval,
        )
    assert time.monotonic() - start < 1.5
    assert retrieval.error.stage == "probing"


def test_pull_finds_private_images(release_app, wsgi_client, license_file):
    registry_app = create_registry_app(public={"org/web"}, private={"org/secret"})

    result = pull_upstream(
        "replicated://my-app",
        license_file=license_file,
        client=wsgi_client(release_app),
        registry_client=wsgi_client(registry_app),
        registry_scheme="http",
    )

    assert result.upstream.name == "my-app"
    assert result.private_images == ["registry.test/org/secret:2.0"]
    assert result.registry_host == "registry.replicated.com"


def test_pull_without_license_skips_image_probing(tmp_path):
    (tmp_path / "web.yaml").write_bytes(deployment_yaml("web", "registry.test/org/secret:2.0"))
    result = pull_upstream("replicated://my-app", local_path=tmp_path)
    assert result.private_images == []
    assert result.registry_host is None


def test_can_pull_upstream():
    assert can_pull_upstream("helm://stable/nginx")
    assert not can_pull_upstream("replicated://my-app")
    assert can_pull_upstream("replicated://my-app", license_file="license.yaml")


def test_application_metadata_only_for_replicated():
    assert pull_application_metadata("helm://stable/nginx") is None

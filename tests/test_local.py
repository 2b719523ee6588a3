"""Tests for reading a release from a local directory."""

import pytest

from upstream.errors import LocalReleaseError
from upstream.local import read_release_from_path
from upstream.types import UNKNOWN_UPDATE_CURSOR


def test_reads_all_regular_files(tmp_path):
    (tmp_path / "manifests" / "nested").mkdir(parents=True)
    (tmp_path / "manifests" / "app.yaml").write_bytes(b"kind: Application\n")
    (tmp_path / "manifests" / "nested" / "deploy.yaml").write_bytes(b"kind: Deployment\n")
    (tmp_path / "empty").mkdir()

    release = read_release_from_path(tmp_path)

    assert release.manifests == {
        "manifests/app.yaml": b"kind: Application\n",
        "manifests/nested/deploy.yaml": b"kind: Deployment\n",
    }
    assert release.update_cursor == UNKNOWN_UPDATE_CURSOR


def test_keys_have_no_leading_separator(tmp_path):
    (tmp_path / "a.yaml").write_bytes(b"a: 1\n")
    release = read_release_from_path(str(tmp_path) + "/")
    assert list(release.manifests) == ["a.yaml"]


def test_missing_directory(tmp_path):
    with pytest.raises(LocalReleaseError):
        read_release_from_path(tmp_path / "does-not-exist")

"""Tests for release path normalization."""

import posixpath

import pytest

from upstream.files import common_dir_prefix, normalize_files, release_to_files
from upstream.types import Release, UpstreamFile


def paths(files):
    return [f.path for f in files]


def test_strips_common_prefix():
    release = Release(manifests={
        "myapp-1.0/manifests/deploy.yaml": b"a",
        "myapp-1.0/manifests/svc/service.yaml": b"b",
    })
    assert paths(release_to_files(release)) == ["deploy.yaml", "svc/service.yaml"]


def test_prefix_is_segment_wise():
    files = [UpstreamFile("app/a.yaml", b""), UpstreamFile("apps/b.yaml", b"")]
    assert paths(normalize_files(files)) == ["app/a.yaml", "apps/b.yaml"]


def test_root_level_file_blocks_stripping():
    files = [UpstreamFile("a.yaml", b""), UpstreamFile("dir/b.yaml", b"")]
    assert paths(normalize_files(files)) == ["a.yaml", "dir/b.yaml"]


def test_single_file_loses_all_directories():
    assert paths(normalize_files([UpstreamFile("x/y/z.yaml", b"")])) == ["z.yaml"]


def test_userdata_untouched_and_last():
    release = Release(manifests={
        "userdata/config.yaml": b"c",
        "wrap/a.yaml": b"a",
        "userdata/license.yaml": b"l",
        "wrap/b/c.yaml": b"b",
    })
    files = release_to_files(release)
    assert paths(files) == ["a.yaml", "b/c.yaml", "userdata/config.yaml", "userdata/license.yaml"]
    assert [f.content for f in files] == [b"a", b"b", b"c", b"l"]


def test_only_userdata_is_a_noop():
    files = [UpstreamFile("userdata/config.yaml", b"c")]
    assert normalize_files(files) == files


def test_no_files():
    assert normalize_files([]) == []
    assert common_dir_prefix([]) == []


def test_userdata_not_at_root_is_normalized():
    files = [UpstreamFile("wrap/userdata/x.yaml", b""), UpstreamFile("wrap/y.yaml", b"")]
    assert paths(normalize_files(files)) == ["userdata/x.yaml", "y.yaml"]


@pytest.mark.parametrize("original", [
    ["a/b/c/1.yaml", "a/b/2.yaml", "a/b/d/e/3.yaml"],
    ["top/1.yaml"],
    ["1.yaml", "x/2.yaml"],
    ["r/s/1.yaml", "r/t/2.yaml", "r/s/u/3.yaml"],
])
def test_reprepending_prefix_restores_paths(original):
    prefix = common_dir_prefix(original)
    normalized = paths(normalize_files([UpstreamFile(p, b"") for p in original]))
    assert [posixpath.join(*prefix, p) for p in normalized] == original


@pytest.mark.parametrize("path", ["userdata/config.yaml", "userdata/nested/license.yaml"])
def test_userdata_paths_are_identical(path):
    files = [UpstreamFile("deep/wrap/a.yaml", b""), UpstreamFile(path, b"x")]
    assert paths(normalize_files(files))[-1] == path

"""
Release to file list conversion.

Upstream archives often wrap everything in one or more directories
(``myapp-1.0/manifests/...``). Those shared leading directories are removed
so that the materialized tree starts at the first directory that differs
between files. Files under ``userdata/`` are generated during retrieval and
are never moved.
"""

import logging
import posixpath

from .types import USERDATA_DIR, Release, UpstreamFile

logger = logging.getLogger(__name__)


def _dir_segments(path: str) -> list[str]:
    directory = posixpath.dirname(path)
    return [segment for segment in directory.split("/") if segment]


def is_userdata(path: str) -> bool:
    segments = _dir_segments(path)
    return bool(segments) and segments[0] == USERDATA_DIR


def common_dir_prefix(paths: list[str]) -> list[str]:
    """
    Longest list of leading directory segments shared by all paths.

    The comparison is per segment, so "app/a.yaml" and "apps/b.yaml" share
    nothing.

    >>> common_dir_prefix(["app/base/a.yaml", "app/base/b/c.yaml"])
    ['app', 'base']
    >>> common_dir_prefix([])
    []
    """
    if not paths:
        return []

    prefix = _dir_segments(paths[0])
    for path in paths[1:]:
        segments = _dir_segments(path)
        n = 0
        while n < len(prefix) and n < len(segments) and prefix[n] == segments[n]:
            n += 1
        prefix = prefix[:n]
        if not prefix:
            break
    return prefix


def strip_dir_prefix(path: str, depth: int) -> str:
    segments = _dir_segments(path)
    return posixpath.join(*segments[depth:], posixpath.basename(path))


def normalize_files(files: list[UpstreamFile]) -> list[UpstreamFile]:
    """
    Strip the common directory prefix of all non-userdata files.

    The result lists the normalized files first, in their original order,
    followed by the untouched userdata files.
    """
    userdata = [f for f in files if is_userdata(f.path)]
    others = [f for f in files if not is_userdata(f.path)]

    if not others:
        return userdata

    prefix = common_dir_prefix([f.path for f in others])
    if prefix:
        logger.debug(f"Removing common prefix {'/'.join(prefix)} from {len(others)} files")

    cleaned = [UpstreamFile(path=strip_dir_prefix(f.path, len(prefix)), content=f.content) for f in others]
    return cleaned + userdata


def release_to_files(release: Release) -> list[UpstreamFile]:
    files = [UpstreamFile(path=path, content=content) for path, content in release.manifests.items()]
    return normalize_files(files)

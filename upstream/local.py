"""
Reading a release from a local directory instead of the release service.
"""

import logging
import os
from pathlib import Path

from .errors import LocalReleaseError
from .types import UNKNOWN_UPDATE_CURSOR, Release

logger = logging.getLogger(__name__)


def read_release_from_path(local_path: str | os.PathLike) -> Release:
    """
    Read every regular file under a directory into a Release.

    Manifest keys are paths relative to ``local_path`` using forward
    slashes. The update cursor is unknown for local releases.

    Raises:
        LocalReleaseError: if the directory does not exist or a file cannot be read
    """
    root = Path(local_path)
    if not root.is_dir():
        raise LocalReleaseError(f"local path {root} is not a directory")

    release = Release(update_cursor=UNKNOWN_UPDATE_CURSOR)

    def onerror(e):
        raise LocalReleaseError(f"failed to walk local path {root}") from e

    try:
        for dirpath, dirnames, filenames in os.walk(root, onerror=onerror):
            dirnames.sort()
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                if not path.is_file():
                    continue
                key = path.relative_to(root).as_posix()
                release.manifests[key] = path.read_bytes()
    except OSError as e:
        raise LocalReleaseError(f"failed to read local release from {root}") from e

    logger.info(f"Read {len(release.manifests)} files from {root}")
    return release

"""
Data types shared across the retrieval pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum

# UpdateCursor for releases that were not fetched from the release service
UNKNOWN_UPDATE_CURSOR = "-1"

USERDATA_DIR = "userdata"


@dataclass(frozen=True)
class DistributionRef:
    """Where to fetch a release from, derived once from the distribution URI."""

    app_slug: str
    channel: str | None = None
    version_label: str | None = None
    sequence: int | None = None


@dataclass
class Release:
    """
    One fetched or locally read snapshot of an upstream.

    ``manifests`` maps archive-relative paths to raw file contents.
    """

    update_cursor: str = ""
    version_label: str = ""
    manifests: dict[str, bytes] = field(default_factory=dict)


@dataclass(frozen=True)
class UpstreamFile:
    path: str
    content: bytes


@dataclass
class Upstream:
    """The materialized release handed to the overlay stages."""

    uri: str
    name: str
    files: list[UpstreamFile]
    type: str = "replicated"
    update_cursor: str = ""
    version_label: str = ""

    def get_file(self, path: str) -> UpstreamFile | None:
        for f in self.files:
            if f.path == path:
                return f
        return None


class ImageVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class ImageClassification:
    name: str
    visibility: ImageVisibility

    @property
    def is_private(self) -> bool:
        return self.visibility is ImageVisibility.PRIVATE

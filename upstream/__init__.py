"""
Upstream release retrieval and materialization.

Retrieves a versioned application release from the release service (or a
local directory), recognizes the application's descriptor and config schema
among its manifests, renders default config values, strips wrapper
directories from the file layout and works out which referenced container
images are private.

Pipeline:
    1. Parse the distribution URI (replicated://app[/channel] or replicated://app@label)
    2. HEAD the release to check the license is accepted
    3. GET the release and stream the gzip tar archive into memory
    4. Find the Application and Config documents by content
    5. Render Config defaults into userdata/config.yaml
    6. Add the license as userdata/license.yaml
    7. Strip the common directory prefix from all non-userdata files
    8. Probe each referenced image anonymously to classify it public or private

Environment Variables:
    LOG_LEVEL, RELEASE_TIMEOUT, METADATA_HOST, METADATA_FALLBACK_HOST,
    IMAGE_PROBE_WORKERS, IMAGE_PROBE_TIMEOUT, MAX_IMAGE_NAME_LENGTH,
    MAX_TAG_LENGTH, UPSTREAM_URI, LOCAL_PATH, LICENSE_FILE
"""

__version__ = "0.1.0"

# Import key components for convenience
from .config import Config
from .distribution import parse_distribution_uri
from .errors import (
    AccessDenied,
    ArchiveCorrupt,
    FetchCancelled,
    InvalidURI,
    MissingCredential,
    TemplateRenderFailure,
    UpstreamError,
    UpstreamUnavailable,
    is_unauthorized,
)
from .files import release_to_files
from .lifecycle import CancelToken
from .privacy import classify_images, find_private_images
from .pull import PullResult, can_pull_upstream, fetch_upstream, pull_application_metadata, pull_upstream
from .types import ImageClassification, ImageVisibility, Release, Upstream, UpstreamFile

__all__ = [
    "Config",
    "parse_distribution_uri",
    "AccessDenied",
    "ArchiveCorrupt",
    "FetchCancelled",
    "InvalidURI",
    "MissingCredential",
    "TemplateRenderFailure",
    "UpstreamError",
    "UpstreamUnavailable",
    "is_unauthorized",
    "release_to_files",
    "CancelToken",
    "classify_images",
    "find_private_images",
    "PullResult",
    "can_pull_upstream",
    "fetch_upstream",
    "pull_application_metadata",
    "pull_upstream",
    "ImageClassification",
    "ImageVisibility",
    "Release",
    "Upstream",
    "UpstreamFile",
]

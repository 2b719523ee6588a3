"""
Pulling an upstream: retrieval, classification, defaulting and normalization.

This module is the boundary to the overlay stages. fetch_upstream returns
the materialized Upstream; pull_upstream additionally works out which images
need rewriting.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from .defaults import create_config_values
from .distribution import REPLICATED_SCHEME, parse_distribution_uri, uri_scheme
from .errors import InvalidURI, MissingCredential, UpstreamError
from .files import release_to_files
from .image import list_images
from .kinds import DecoderRegistry, License, default_registry, find_app_in_release, find_config_in_release
from .license import parse_license_from_file, registry_endpoint_from_license
from .lifecycle import CancelToken, Retrieval, RetrievalState
from .local import read_release_from_path
from .privacy import find_private_images
from .replicated import download_release, get_application_metadata, probe_release
from .types import USERDATA_DIR, Upstream

logger = logging.getLogger(__name__)

CONFIG_VALUES_PATH = f"{USERDATA_DIR}/config.yaml"
LICENSE_PATH = f"{USERDATA_DIR}/license.yaml"


@dataclass
class PullResult:
    """What the overlay stages receive."""

    upstream: Upstream
    private_images: list[str] = field(default_factory=list)
    registry_host: str | None = None


def fetch_upstream(
    uri: str,
    local_path: str | Path | None = None,
    license: License | None = None,
    *,
    client: httpx.Client | None = None,
    cancel: CancelToken | None = None,
    registry: DecoderRegistry | None = None,
    retrieval: Retrieval | None = None,
) -> Upstream:
    """
    Retrieve and materialize an upstream release.

    The release is read from ``local_path`` when given, otherwise downloaded
    from the release service, which requires a license. The first
    Application in the release names the upstream; if the release has a
    Config, rendered defaults are added as userdata/config.yaml, and the
    license, if any, as userdata/license.yaml. Common leading directories
    are then stripped from every non-userdata file.

    Args:
        uri: Distribution URI, e.g. "replicated://myapp/stable"
        local_path: Directory holding the release, to skip downloading
        license: License used to authenticate the download
        client: HTTP client for the release service
        cancel: Cancellation token; a cancelled run raises FetchCancelled
        registry: Decoder registry for manifest classification
        retrieval: State tracker; a new one is used if omitted

    Returns:
        The materialized Upstream

    Raises:
        UpstreamError: the first failure of any stage, with its stage recorded
    """
    retrieval = retrieval or Retrieval(uri)
    registry = registry or default_registry()

    def check_cancel():
        if cancel is not None:
            cancel.check(f"retrieval of {uri}")

    try:
        scheme = uri_scheme(uri)
        if scheme != REPLICATED_SCHEME:
            raise InvalidURI(f"unsupported upstream scheme {scheme!r}")

        if local_path:
            retrieval.advance(RetrievalState.READING_LOCAL)
            release = read_release_from_path(local_path)
        else:
            if license is None:
                raise MissingCredential("no license was provided")

            ref = parse_distribution_uri(uri)
            retrieval.advance(RetrievalState.RESOLVED)

            check_cancel()
            retrieval.advance(RetrievalState.PROBING)
            license = probe_release(ref, license, client, cancel)

            check_cancel()
            retrieval.advance(RetrievalState.DOWNLOADING)
            release = download_release(ref, license, client, cancel)

        check_cancel()
        retrieval.advance(RetrievalState.CLASSIFYING)
        application = find_app_in_release(release, registry)
        config = find_config_in_release(release, registry)

        if config is not None:
            retrieval.advance(RetrievalState.DEFAULTING)
            config_values = create_config_values(application.name, config)
            release.manifests[CONFIG_VALUES_PATH] = config_values.to_yaml()

        if license is not None:
            release.manifests[LICENSE_PATH] = license.to_yaml()

        check_cancel()
        retrieval.advance(RetrievalState.NORMALIZING)
        files = release_to_files(release)

        upstream = Upstream(
            uri=uri,
            name=application.name,
            files=files,
            type=REPLICATED_SCHEME,
            update_cursor=release.update_cursor,
            version_label=release.version_label,
        )
        retrieval.advance(RetrievalState.DONE)

    except UpstreamError as e:
        retrieval.fail(e)
        raise

    logger.info(f"Fetched upstream {upstream.name} with {len(upstream.files)} files")
    return upstream


def pull_upstream(
    uri: str,
    local_path: str | Path | None = None,
    license_file: str | Path | None = None,
    *,
    client: httpx.Client | None = None,
    registry_client: httpx.Client | None = None,
    registry_scheme: str = "https",
    cancel: CancelToken | None = None,
) -> PullResult:
    """
    Fetch an upstream and find the images that need rewriting.

    Private images are only looked for when a license is given, since only
    licensed applications have a private registry to rewrite to.
    """
    license = parse_license_from_file(license_file) if license_file else None

    upstream = fetch_upstream(uri, local_path, license, client=client, cancel=cancel)

    result = PullResult(upstream=upstream)
    if license is not None:
        result.registry_host = registry_endpoint_from_license(license)
        images = list_images(upstream.files)
        result.private_images = find_private_images(
            images, client=registry_client, cancel=cancel, scheme=registry_scheme
        )

    return result


def pull_application_metadata(uri: str, client: httpx.Client | None = None) -> bytes | None:
    """
    Return the application metadata for an upstream, if it has any.

    Metadata is only available for licensed (replicated://) applications.
    """
    if uri_scheme(uri) != REPLICATED_SCHEME:
        return None
    return get_application_metadata(uri, client)


def can_pull_upstream(uri: str, license_file: str | None = None) -> bool:
    """
    Report whether an upstream can be pulled with the given options.

    Every replicated:// application needs a license, so no request is made.
    """
    if uri_scheme(uri) != REPLICATED_SCHEME:
        return True
    return bool(license_file)

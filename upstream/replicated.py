"""
Client for the release service.

Wire protocol:
    HEAD/GET {endpoint}/release/{appSlug}[/{channel}]
        Authorization: Basic base64(licenseID:licenseID)

    A successful GET answers with a gzip compressed tar archive of the
    release. Version metadata comes from the response headers:
        X-Replicated-Sequence       update cursor
        X-Replicated-VersionLabel   version label

    GET https://{metadata host}/metadata/{appSlug}[/{channel}]
        Application metadata. 404 means the app has none.
"""

import base64
import io
import logging
import tarfile
import zlib
from contextlib import contextmanager
from urllib.parse import urlsplit

import httpx

from .config import config
from .distribution import parse_distribution_uri
from .errors import AccessDenied, ArchiveCorrupt, FetchCancelled, InvalidLicense, UpstreamUnavailable
from .kinds import License
from .lifecycle import CancelToken, is_cancelled, request_timeout
from .types import DistributionRef, Release

logger = logging.getLogger(__name__)

SEQUENCE_HEADER = "X-Replicated-Sequence"
VERSION_LABEL_HEADER = "X-Replicated-VersionLabel"

DEFAULT_METADATA = b"""apiVersion: kots.io/v1beta1
kind: Application
metadata:
  name: "Application"
spec:
  title: "Application"
  icon: https://cdn1.iconfinder.com/data/icons/ninja-things-1/1772/ninja-simple-512.png
"""


@contextmanager
def _client_scope(client: httpx.Client | None, timeout: float):
    """Use the given client, or a new one that is closed afterwards."""
    if client is not None:
        yield client
        return
    with httpx.Client(timeout=timeout) as owned:
        yield owned


def release_url(ref: DistributionRef, license: License) -> str:
    """
    Build the release URL for an app on the license's endpoint.

    >>> release_url(DistributionRef("myapp", channel="beta"), License("id", endpoint="https://replicated.app:8443/x"))
    'https://replicated.app:8443/release/myapp/beta'
    """
    try:
        endpoint = urlsplit(license.endpoint)
        port = endpoint.port
    except ValueError as e:
        raise InvalidLicense(f"failed to parse endpoint {license.endpoint!r} from license") from e

    if not endpoint.scheme or not endpoint.hostname:
        raise InvalidLicense(f"license endpoint {license.endpoint!r} has no scheme or host")

    host = endpoint.hostname
    if port is not None:
        host = f"{host}:{port}"

    url = f"{endpoint.scheme}://{host}/release/{ref.app_slug}"
    if ref.channel:
        url = f"{url}/{ref.channel}"
    return url


def license_auth_header(license: License) -> dict[str, str]:
    credentials = f"{license.license_id}:{license.license_id}".encode("utf-8")
    return {"Authorization": f"Basic {base64.b64encode(credentials).decode('ascii')}"}


def probe_release(
    ref: DistributionRef,
    license: License,
    client: httpx.Client | None = None,
    cancel: CancelToken | None = None,
) -> License:
    """
    Check that the license may download the release before fetching it.

    Args:
        ref: Parsed distribution reference
        license: License whose ID authenticates the request
        client: HTTP client to use (a new one is created if omitted)
        cancel: Cancellation token; its deadline bounds the request

    Returns:
        The license, unchanged, for the download that follows

    Raises:
        AccessDenied: if the service answers 401
        FetchCancelled: if ``cancel`` fires before the service answers
        UpstreamUnavailable: for any other status >= 400 or a transport failure
    """
    url = release_url(ref, license)
    logger.info(f"Checking access to {url}")

    with _client_scope(client, config.RELEASE_TIMEOUT) as c:
        try:
            resp = c.head(url, headers=license_auth_header(license), timeout=request_timeout(cancel))
        except httpx.HTTPError as e:
            if is_cancelled(cancel):
                raise FetchCancelled(f"access check of {url} cancelled") from e
            logger.error(f"HEAD {url} failed: {e}")
            raise UpstreamUnavailable(f"failed to execute head request to {url}") from e

    if resp.status_code == 401:
        logger.warning(f"License {license.license_id} was not accepted for {ref.app_slug}")
        raise AccessDenied("license was not accepted")
    if resp.status_code >= 400:
        logger.error(f"Unexpected result from head request: {resp.status_code}")
        raise UpstreamUnavailable(f"unexpected result from head request: {resp.status_code}", code=resp.status_code)

    return license


class _ResponseStream(io.RawIOBase):
    """Read-only file object over a streamed response body."""

    def __init__(self, chunks, cancel: CancelToken | None = None):
        self._chunks = chunks
        self._cancel = cancel
        self._buffer = b""

    def readable(self):
        return True

    def readinto(self, b):
        while not self._buffer:
            if self._cancel is not None:
                self._cancel.check("release download")
            chunk = next(self._chunks, None)
            if chunk is None:
                return 0
            self._buffer = chunk
        n = min(len(b), len(self._buffer))
        b[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n


def read_release_archive(stream, release: Release) -> Release:
    """
    Decode a gzip compressed tar stream into ``release.manifests``.

    Directories are skipped; regular files are stored under their name in
    the archive. Other entry types (links, devices) are ignored.

    Raises:
        ArchiveCorrupt: if the compression or tar framing is malformed
    """
    try:
        with tarfile.open(fileobj=stream, mode="r|gz") as tar:
            for member in tar:
                if member.isdir():
                    continue
                if not member.isreg():
                    logger.debug(f"Ignoring non-regular archive entry {member.name}")
                    continue
                f = tar.extractfile(member)
                release.manifests[member.name] = f.read()
    except (tarfile.TarError, EOFError, zlib.error, OSError) as e:
        logger.error(f"Release archive is corrupt: {e}")
        raise ArchiveCorrupt(f"failed to read release archive: {e}") from e

    return release


def download_release(
    ref: DistributionRef,
    license: License,
    client: httpx.Client | None = None,
    cancel: CancelToken | None = None,
) -> Release:
    """
    Download and decode a release.

    The response body is streamed straight into the tar decoder and is closed
    on every exit path.

    Raises:
        UpstreamUnavailable: for a status >= 400 or a transport failure
        ArchiveCorrupt: if the body is not a valid gzip compressed tar archive
        FetchCancelled: if ``cancel`` fires while downloading
    """
    url = release_url(ref, license)
    logger.info(f"Downloading release from {url}")

    with _client_scope(client, config.RELEASE_TIMEOUT) as c:
        try:
            with c.stream(
                "GET", url, headers=license_auth_header(license), timeout=request_timeout(cancel)
            ) as resp:
                if resp.status_code >= 400:
                    logger.error(f"Unexpected result from get request: {resp.status_code}")
                    raise UpstreamUnavailable(
                        f"unexpected result from get request: {resp.status_code}", code=resp.status_code
                    )

                release = Release(
                    update_cursor=resp.headers.get(SEQUENCE_HEADER, ""),
                    version_label=resp.headers.get(VERSION_LABEL_HEADER, ""),
                )
                read_release_archive(_ResponseStream(resp.iter_bytes(), cancel), release)
        except httpx.HTTPError as e:
            if is_cancelled(cancel):
                raise FetchCancelled(f"release download from {url} cancelled") from e
            logger.error(f"GET {url} failed: {e}")
            raise UpstreamUnavailable(f"failed to execute get request to {url}") from e

    logger.info(
        f"Downloaded release {release.version_label or '(no label)'} "
        f"(sequence {release.update_cursor or 'unknown'}): {len(release.manifests)} files"
    )
    return release


def get_metadata_from_host(host: str, ref: DistributionRef, client: httpx.Client | None = None) -> bytes | None:
    """
    Fetch application metadata from one host.

    Returns:
        The metadata document, or None if the host has none (404)

    Raises:
        UpstreamUnavailable: for any other status >= 400 or a transport failure
    """
    url = f"https://{host}/metadata/{ref.app_slug}"
    if ref.channel:
        url = f"{url}/{ref.channel}"

    with _client_scope(client, config.RELEASE_TIMEOUT) as c:
        try:
            resp = c.get(url)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"failed to execute get request to {url}") from e

    if resp.status_code == 404:
        logger.debug(f"No application metadata on {host}")
        return None
    if resp.status_code >= 400:
        raise UpstreamUnavailable(f"unexpected result from get request: {resp.status_code}", code=resp.status_code)

    return resp.content


def get_application_metadata(uri: str, client: httpx.Client | None = None) -> bytes:
    """
    Return the application metadata for a distribution URI.

    The primary metadata host is asked first, then the fallback host. If
    neither has metadata, a built-in placeholder Application is returned.
    """
    ref = parse_distribution_uri(uri)

    for host in (config.METADATA_HOST, config.METADATA_FALLBACK_HOST):
        try:
            metadata = get_metadata_from_host(host, ref, client)
        except UpstreamUnavailable as e:
            e.stage = f"metadata from {host}"
            raise
        if metadata is not None:
            logger.info(f"Found application metadata for {ref.app_slug} on {host}")
            return metadata

    logger.info(f"No application metadata for {ref.app_slug}, using default")
    return DEFAULT_METADATA

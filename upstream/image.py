"""
Remote image access and image discovery in manifests.

Provides a minimal registry client that opens an image's manifest through
the registry v2 API without credentials, and a scanner that lists the
images referenced by workload manifests.
"""

import logging
from dataclasses import dataclass

import httpx
import yaml

from .config import config
from .errors import (
    FetchCancelled,
    ImageProbeError,
    ProbeNetworkFailure,
    RegistryError,
    RegistryErrors,
    UnauthorizedForCredentials,
)
from .lifecycle import CancelToken, is_cancelled, request_timeout
from .types import UpstreamFile
from .validation import ImageReference, compute_sha256

logger = logging.getLogger(__name__)

MANIFEST_MEDIA_TYPES = (
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
)


@dataclass(frozen=True)
class RemoteImage:
    """Handle on an image whose manifest the registry served."""

    reference: ImageReference
    digest: str
    media_type: str
    size: int


def parse_auth_challenge(header: str) -> tuple[str, dict[str, str]]:
    """
    Parse a WWW-Authenticate header into (scheme, params).

    Example:
        >>> parse_auth_challenge('Bearer realm="https://auth.docker.io/token",service="registry.docker.io"')
        ('bearer', {'realm': 'https://auth.docker.io/token', 'service': 'registry.docker.io'})
    """
    scheme, _, rest = header.strip().partition(" ")
    params = {}
    for part in _split_params(rest):
        key, sep, value = part.partition("=")
        if sep:
            params[key.strip().lower()] = value.strip().strip('"')
    return scheme.lower(), params


def _split_params(s: str) -> list[str]:
    # commas inside quoted values (e.g. scope lists) do not separate params
    parts, current, quoted = [], [], False
    for ch in s:
        if ch == '"':
            quoted = not quoted
        if ch == "," and not quoted:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    if current:
        parts.append("".join(current))
    return [p for p in parts if p.strip()]


def registry_errors_from_response(resp: httpx.Response) -> RegistryErrors:
    """
    Build a RegistryErrors aggregate from an error response.

    Registries describe failures as {"errors": [{"code": ..., "message": ...}]}.
    When the body has no such list, the status code alone becomes one error.
    """
    entries = []
    try:
        body = resp.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and isinstance(body.get("errors"), list):
        for entry in body["errors"]:
            if not isinstance(entry, dict):
                continue
            code = str(entry.get("code") or "UNKNOWN")
            err = RegistryError(code, str(entry.get("message") or ""))
            if err.http_status is None:
                err.http_status = resp.status_code
            entries.append(err)

    if not entries:
        entries.append(RegistryError(f"HTTP_{resp.status_code}", resp.reason_phrase, http_status=resp.status_code))
    return RegistryErrors(entries)


class RegistryClient:
    """
    Anonymous registry v2 client.

    Only fetches manifests; an image counts as opened once its manifest has
    been served. Token negotiation follows the registry's bearer challenge
    without presenting any credentials.
    """

    def __init__(self, client: httpx.Client | None = None, scheme: str = "https"):
        self.scheme = scheme
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=config.IMAGE_PROBE_TIMEOUT, follow_redirects=True)

    def close(self):
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def open_image(self, ref: ImageReference, cancel: CancelToken | None = None) -> RemoteImage:
        """
        Fetch the manifest of an image without credentials.

        Every request is bounded by what is left of the deadline of ``cancel``.

        Raises:
            ImageProbeError: if the registry refuses or fails the request; the
                registry's errors are chained as the cause
            ProbeNetworkFailure: if the registry cannot be reached or times out
            FetchCancelled: if ``cancel`` fires before the registry answers
        """
        url = f"{self.scheme}://{ref.registry_host}/v2/{ref.repository}/manifests/{ref.reference}"
        headers = {"Accept": ", ".join(MANIFEST_MEDIA_TYPES)}
        logger.debug(f"Opening image {ref.original} via {url}")

        try:
            resp = self.client.get(url, headers=headers, timeout=request_timeout(cancel))
            if resp.status_code == 401:
                token = self._anonymous_token(resp, ref, cancel)
                if token is not None:
                    headers["Authorization"] = f"Bearer {token}"
                    resp = self.client.get(url, headers=headers, timeout=request_timeout(cancel))

            if resp.status_code >= 400:
                raise registry_errors_from_response(resp)

        except httpx.TransportError as e:
            if is_cancelled(cancel):
                raise FetchCancelled(f"probe of {ref.original} cancelled") from e
            raise ProbeNetworkFailure(f"failed to reach registry for {ref.original}: {e}", image=ref.original) from e
        except httpx.HTTPError as e:
            raise ImageProbeError(f"request for {ref.original} failed: {e}", image=ref.original) from e
        except (RegistryErrors, UnauthorizedForCredentials) as e:
            raise ImageProbeError(f"failed to open image {ref.original}", image=ref.original) from e

        digest = resp.headers.get("Docker-Content-Digest") or compute_sha256(resp.content)
        if ref.digest and compute_sha256(resp.content) != ref.digest:
            raise ImageProbeError(
                f"manifest digest mismatch for {ref.original}: got {compute_sha256(resp.content)}",
                image=ref.original,
            )

        return RemoteImage(
            reference=ref,
            digest=digest,
            media_type=resp.headers.get("Content-Type", ""),
            size=len(resp.content),
        )

    def _anonymous_token(
        self, resp: httpx.Response, ref: ImageReference, cancel: CancelToken | None = None
    ) -> str | None:
        """
        Answer a bearer challenge anonymously.

        Returns None when the registry did not offer a bearer challenge, in
        which case the original 401 stands.
        """
        scheme, params = parse_auth_challenge(resp.headers.get("WWW-Authenticate", ""))
        if scheme != "bearer" or not params.get("realm"):
            return None

        query = {"scope": f"repository:{ref.repository}:pull"}
        if params.get("service"):
            query["service"] = params["service"]

        token_resp = self.client.get(params["realm"], params=query, timeout=request_timeout(cancel))
        if token_resp.status_code in (401, 403):
            raise UnauthorizedForCredentials(f"unable to retrieve auth token for {ref.original}: invalid username/password")
        if token_resp.status_code >= 400:
            raise registry_errors_from_response(token_resp)

        try:
            body = token_resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        return body.get("token") or body.get("access_token") or None


# -------------------------------
# Image discovery
# -------------------------------


def _pod_specs(doc: dict):
    if doc.get("kind") == "Pod":
        yield doc.get("spec")

    spec = doc.get("spec")
    if not isinstance(spec, dict):
        return

    template = spec.get("template")
    if isinstance(template, dict):
        yield template.get("spec")

    job_template = spec.get("jobTemplate")
    if isinstance(job_template, dict):
        job_spec = job_template.get("spec")
        if isinstance(job_spec, dict) and isinstance(job_spec.get("template"), dict):
            yield job_spec["template"].get("spec")


def images_in_document(doc) -> list[str]:
    """Images of containers and init containers in one workload document."""
    if not isinstance(doc, dict):
        return []

    images = []
    for pod_spec in _pod_specs(doc):
        if not isinstance(pod_spec, dict):
            continue
        for key in ("containers", "initContainers"):
            for container in pod_spec.get(key) or []:
                if isinstance(container, dict) and isinstance(container.get("image"), str) and container["image"]:
                    images.append(container["image"])
    return images


def list_images(files: list[UpstreamFile]) -> list[str]:
    """
    List the distinct images referenced by a set of manifests, sorted.

    Files that are not YAML are skipped.
    """
    found = set()
    for f in files:
        try:
            docs = list(yaml.safe_load_all(f.content))
        except yaml.YAMLError:
            logger.debug(f"Skipping non-YAML file {f.path} while listing images")
            continue
        for doc in docs:
            found.update(images_in_document(doc))

    logger.info(f"Found {len(found)} images in {len(files)} files")
    return sorted(found)

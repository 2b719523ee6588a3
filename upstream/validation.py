"""
Container image reference validation and parsing.

Provides validation functions for image references, tags and digests, and
normalization of short references ("nginx") to fully qualified ones
("docker.io/library/nginx:latest").
"""

import hashlib
import logging
import re
from dataclasses import dataclass

from .config import config
from .errors import InvalidImageReference

logger = logging.getLogger(__name__)

DOCKER_HUB_DOMAIN = "docker.io"
DOCKER_HUB_REGISTRY = "registry-1.docker.io"

_PATH_COMPONENT = re.compile(r'^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$')
_DOMAIN = re.compile(r'^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)*(?::[0-9]+)?$')


@dataclass(frozen=True)
class ImageReference:
    """A parsed, normalized image reference."""

    original: str
    domain: str
    repository: str
    tag: str | None = None
    digest: str | None = None

    @property
    def registry_host(self) -> str:
        """Host serving the registry API for this reference's domain."""
        if self.domain == DOCKER_HUB_DOMAIN:
            return DOCKER_HUB_REGISTRY
        return self.domain

    @property
    def reference(self) -> str:
        """Tag or digest used to address the manifest."""
        return self.digest or self.tag or "latest"

    def __str__(self):
        name = f"{self.domain}/{self.repository}"
        if self.tag:
            name = f"{name}:{self.tag}"
        if self.digest:
            name = f"{name}@{self.digest}"
        return name


def compute_sha256(data: bytes) -> str:
    """
    Compute SHA256 digest in OCI/Docker format.

    Args:
        data: Bytes to hash

    Returns:
        String in format "sha256:<64 hex chars>"

    Example:
        >>> compute_sha256(b"hello")
        'sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    h = hashlib.sha256()
    h.update(data)
    return "sha256:" + h.hexdigest()


def validate_image_name(name: str) -> None:
    """
    Validate the character set and length of an image reference.

    Raises:
        InvalidImageReference: if the reference is empty, too long, or has
            characters that cannot appear in a reference
    """
    if not name or len(name) > config.MAX_IMAGE_NAME_LENGTH:
        logger.warning(f"Invalid image name length: {len(name)}")
        raise InvalidImageReference(f"invalid image name {name!r}: must be 1-{config.MAX_IMAGE_NAME_LENGTH} characters")

    if not re.match(r'^[a-zA-Z0-9._/:@-]+$', name):
        logger.warning(f"Invalid image name format: {name}")
        raise InvalidImageReference(f"invalid image name {name!r}: unexpected characters")


def validate_tag(tag: str) -> None:
    """
    Validate container image tag.

    Rules:
        - Must be 1-{MAX_TAG_LENGTH} characters (configurable)
        - Starts with an alphanumeric character or underscore
        - Only alphanumeric characters, dots (.), hyphens (-), and underscores (_)
    """
    if not tag or len(tag) > config.MAX_TAG_LENGTH:
        logger.warning(f"Invalid tag length: {len(tag)}")
        raise InvalidImageReference(f"invalid tag {tag!r}: must be 1-{config.MAX_TAG_LENGTH} characters")

    if not re.match(r'^[a-zA-Z0-9_][a-zA-Z0-9._-]*$', tag):
        logger.warning(f"Invalid tag format: {tag}")
        raise InvalidImageReference(f"invalid tag {tag!r}")


def validate_digest(digest: str) -> None:
    """
    Validate SHA256 digest format per OCI specification.

    Format:
        Must match: sha256:<64 lowercase hex characters>
    """
    if not re.match(r'^sha256:[a-f0-9]{64}$', digest):
        logger.warning(f"Invalid digest format: {digest}")
        raise InvalidImageReference(f"invalid digest {digest!r}: must be sha256:<64 hex characters>")


def parse_image_reference(image: str) -> ImageReference:
    """
    Parse and normalize an image reference as found in a pod spec.

    References without a registry domain resolve to Docker Hub, and single
    component Docker Hub names live under "library/". References with
    neither tag nor digest get the "latest" tag.

    Raises:
        InvalidImageReference: if the reference is malformed

    Examples:
        >>> str(parse_image_reference("nginx"))
        'docker.io/library/nginx:latest'

        >>> ref = parse_image_reference("quay.io/org/app:1.2")
        >>> ref.registry_host, ref.repository, ref.tag
        ('quay.io', 'org/app', '1.2')

        >>> parse_image_reference("localhost:5000/app").registry_host
        'localhost:5000'
    """
    validate_image_name(image)

    name, digest = image, None
    if "@" in image:
        name, _, digest = image.partition("@")
        validate_digest(digest)

    tag = None
    last_slash = name.rfind("/")
    colon = name.rfind(":")
    if colon > last_slash:
        name, tag = name[:colon], name[colon + 1:]
        validate_tag(tag)

    domain, sep, remainder = name.partition("/")
    if not sep or not ("." in domain or ":" in domain or domain == "localhost"):
        domain, remainder = DOCKER_HUB_DOMAIN, name
    if domain == DOCKER_HUB_DOMAIN and "/" not in remainder:
        remainder = f"library/{remainder}"

    if not _DOMAIN.match(domain):
        raise InvalidImageReference(f"invalid image name {image!r}: bad registry domain {domain!r}")
    if not remainder or not all(_PATH_COMPONENT.match(c) for c in remainder.split("/")):
        raise InvalidImageReference(f"invalid image name {image!r}: repository must be lowercase path components")

    if tag is None and digest is None:
        tag = "latest"

    return ImageReference(original=image, domain=domain, repository=remainder, tag=tag, digest=digest)

"""
License loading and license-derived settings.
"""

import logging
from pathlib import Path
from urllib.parse import urlsplit

from .errors import InvalidLicense
from .kinds import DecoderRegistry, License, default_registry

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "registry.replicated.com"


def parse_license(content: bytes, registry: DecoderRegistry | None = None) -> License:
    """
    Decode a kots.io/v1beta1 License document.

    Raises:
        InvalidLicense: if the content is not a License
    """
    registry = registry or default_registry()
    license = registry.decode(content)
    if not isinstance(license, License):
        raise InvalidLicense("not an application license")
    if not license.license_id:
        raise InvalidLicense("license has no licenseID")
    return license


def parse_license_from_file(filename: str | Path, registry: DecoderRegistry | None = None) -> License:
    try:
        content = Path(filename).read_bytes()
    except OSError as e:
        raise InvalidLicense(f"failed to read license file {filename}") from e

    license = parse_license(content, registry)
    logger.info(f"Loaded license {license.license_id} for app {license.app_slug or '(unknown)'}")
    return license


def registry_endpoint_from_license(license: License) -> str:
    """
    Registry host that serves the private images of a licensed application.

    >>> registry_endpoint_from_license(License(license_id="x", endpoint="https://staging.replicated.app"))
    'registry.staging.replicated.com'
    """
    try:
        hostname = urlsplit(license.endpoint).hostname
    except ValueError:
        return DEFAULT_REGISTRY

    if hostname == "staging.replicated.app":
        return "registry.staging.replicated.com"
    if hostname == "localhost":
        return "localhost:1234"
    return DEFAULT_REGISTRY

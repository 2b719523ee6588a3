"""
Distribution URI parsing.

A distribution URI names an application on the release service:

    replicated://myapp              app slug only
    replicated://myapp/unstable     app slug and channel
    replicated://myapp@1.0.2        app slug and version label
"""

import logging
from urllib.parse import unquote, urlsplit

from .errors import InvalidURI
from .types import DistributionRef

logger = logging.getLogger(__name__)

REPLICATED_SCHEME = "replicated"


def _split_uri(uri: str):
    try:
        parts = urlsplit(uri)
        # accessing .port validates it
        parts.port
    except ValueError as e:
        raise InvalidURI(f"failed to parse uri {uri!r}") from e

    if not parts.scheme or not parts.netloc:
        raise InvalidURI(f"failed to parse uri {uri!r}: scheme and host are required")
    return parts


def _hostname(netloc: str) -> str:
    """Host part of a netloc, without user info or port, case preserved."""
    hostport = netloc.rpartition("@")[2]
    if hostport.startswith("["):
        return hostport[1:hostport.find("]")]
    host, sep, port = hostport.rpartition(":")
    if sep and port.isdigit():
        return host
    return hostport


def uri_scheme(uri: str) -> str:
    """Return the scheme of a distribution URI, raising InvalidURI if it cannot be parsed."""
    return _split_uri(uri).scheme


def parse_distribution_uri(uri: str) -> DistributionRef:
    """
    Parse a distribution URI into a DistributionRef.

    If the URI carries user info with a non-empty user name, the user name is
    the app slug and the host is the version label. Otherwise the host is the
    app slug and the path, if any, is the channel.

    Args:
        uri: Distribution URI, e.g. "replicated://myapp/unstable"

    Returns:
        DistributionRef for the URI

    Raises:
        InvalidURI: if the URI cannot be parsed or has no host

    Examples:
        >>> parse_distribution_uri("replicated://myapp/unstable")
        DistributionRef(app_slug='myapp', channel='unstable', version_label=None, sequence=None)

        >>> parse_distribution_uri("replicated://myapp@1.0.2")
        DistributionRef(app_slug='myapp', channel=None, version_label='1.0.2', sequence=None)
    """
    parts = _split_uri(uri)
    hostname = _hostname(parts.netloc)

    if parts.username:
        ref = DistributionRef(app_slug=unquote(parts.username), version_label=hostname)
    else:
        channel = parts.path.removeprefix("/") or None
        ref = DistributionRef(app_slug=hostname, channel=channel)

    if not ref.app_slug:
        raise InvalidURI(f"failed to parse uri {uri!r}: no app slug")

    logger.debug(f"Parsed distribution uri {uri}: {ref}")
    return ref

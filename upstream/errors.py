"""
Error hierarchy for upstream retrieval and image probing.

Every error raised by this package derives from UpstreamError. Errors are
chained with ``raise ... from exc`` and the chain is exposed through the
``cause`` property, which is what is_unauthorized() walks.
"""

# HTTP status for each registry error code (docker distribution errcode descriptors)
REGISTRY_ERROR_STATUS = {
    "UNAUTHORIZED": 401,
    "DENIED": 403,
    "NAME_UNKNOWN": 404,
    "MANIFEST_UNKNOWN": 404,
    "BLOB_UNKNOWN": 404,
    "NAME_INVALID": 400,
    "TAG_INVALID": 400,
    "MANIFEST_INVALID": 400,
    "DIGEST_INVALID": 400,
    "UNSUPPORTED": 405,
    "TOOMANYREQUESTS": 429,
    "UNKNOWN": 500,
    "UNAVAILABLE": 503,
}


class UpstreamError(Exception):
    """Base class for all errors raised while retrieving or probing an upstream."""

    def __init__(self, message: str, *, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    @property
    def cause(self) -> BaseException | None:
        """The error this one wraps, if any."""
        return self.__cause__

    def __str__(self):
        if self.stage:
            return f"{self.stage}: {self.message}"
        return self.message


class InvalidURI(UpstreamError):
    pass


class MissingCredential(UpstreamError):
    pass


class InvalidLicense(UpstreamError):
    pass


class AccessDenied(UpstreamError):
    """The release service rejected the license (401 on the access probe)."""


class UpstreamUnavailable(UpstreamError):
    """The release or metadata service answered with an error status or could not be reached."""

    def __init__(self, message: str, *, code: int | None = None, stage: str | None = None):
        super().__init__(message, stage=stage)
        self.code = code


class ArchiveCorrupt(UpstreamError):
    pass


class LocalReleaseError(UpstreamError):
    pass


class TemplateRenderFailure(UpstreamError):
    def __init__(self, message: str, *, item: str | None = None, stage: str | None = None):
        super().__init__(message, stage=stage)
        self.item = item


class FetchCancelled(UpstreamError):
    """The caller cancelled the run or its deadline passed."""


# -------------------------------
# Image probing
# -------------------------------


class InvalidImageReference(UpstreamError):
    pass


class RegistryError(UpstreamError):
    """
    A single error entry returned by a registry.

    Registries answer failures with a body such as
    ``{"errors": [{"code": "UNAUTHORIZED", "message": "..."}]}``; each entry
    becomes one RegistryError.
    """

    def __init__(self, code: str, message: str = "", *, http_status: int | None = None):
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        if http_status is None:
            http_status = REGISTRY_ERROR_STATUS.get(code.upper())
        self.http_status = http_status


class RegistryErrors(UpstreamError):
    """Aggregate of several registry errors from one response."""

    def __init__(self, errors: list[UpstreamError]):
        super().__init__("; ".join(str(e) for e in errors) or "registry returned no errors")
        self.errors = list(errors)


class UnauthorizedForCredentials(UpstreamError):
    """The registry refused the supplied (or absent) credentials."""


class ImageProbeError(UpstreamError):
    """Opening a remote image failed."""

    def __init__(self, message: str, *, image: str, stage: str | None = None):
        super().__init__(message, stage=stage)
        self.image = image


class ProbeNetworkFailure(ImageProbeError):
    """The registry could not be reached (connection failure, timeout)."""


def is_unauthorized(err: BaseException | None) -> bool:
    """
    Report whether an error is, or wraps, a registry authorization failure.

    Walks the cause chain of any exception, including causes that are not
    UpstreamError, and descends into RegistryErrors aggregates. A RegistryError counts as unauthorized when
    its code maps to HTTP 401.

    Args:
        err: Error raised while opening a remote image

    Returns:
        True if any error reachable from ``err`` is an authorization failure

    Example:
        >>> inner = RegistryErrors([RegistryError("UNAUTHORIZED", "authentication required")])
        >>> try:
        ...     raise ImageProbeError("failed", image="private/app") from inner
        ... except ImageProbeError as e:
        ...     is_unauthorized(e)
        True
    """
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))

        if isinstance(err, UnauthorizedForCredentials):
            return True
        if isinstance(err, RegistryErrors):
            if any(is_unauthorized(e) for e in err.errors):
                return True
        elif isinstance(err, RegistryError):
            if err.http_status == 401:
                return True

        err = err.cause if isinstance(err, UpstreamError) else err.__cause__

    return False

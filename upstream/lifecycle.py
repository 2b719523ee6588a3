"""
Retrieval state tracking and cancellation.
"""

import logging
import threading
import time
from enum import Enum

import httpx

from .errors import FetchCancelled, UpstreamError

logger = logging.getLogger(__name__)


class RetrievalState(str, Enum):
    IDLE = "idle"
    RESOLVED = "resolved"
    PROBING = "probing"
    DOWNLOADING = "downloading"
    READING_LOCAL = "reading_local"
    CLASSIFYING = "classifying"
    DEFAULTING = "defaulting"
    NORMALIZING = "normalizing"
    DONE = "done"
    FAILED = "failed"


# Allowed forward transitions; FAILED is reachable from any non-terminal state.
_TRANSITIONS = {
    RetrievalState.IDLE: {RetrievalState.RESOLVED, RetrievalState.READING_LOCAL},
    RetrievalState.RESOLVED: {RetrievalState.PROBING},
    RetrievalState.PROBING: {RetrievalState.DOWNLOADING},
    RetrievalState.DOWNLOADING: {RetrievalState.CLASSIFYING},
    RetrievalState.READING_LOCAL: {RetrievalState.CLASSIFYING},
    RetrievalState.CLASSIFYING: {RetrievalState.DEFAULTING, RetrievalState.NORMALIZING},
    RetrievalState.DEFAULTING: {RetrievalState.NORMALIZING},
    RetrievalState.NORMALIZING: {RetrievalState.DONE},
    RetrievalState.DONE: set(),
    RetrievalState.FAILED: set(),
}


class CancelToken:
    """
    Cooperative cancellation for a retrieval or probe run.

    Cancelled either explicitly through cancel() or implicitly once the
    optional deadline (seconds from creation) has passed.
    """

    def __init__(self, deadline: float | None = None):
        self._event = threading.Event()
        self._expires_at = time.monotonic() + deadline if deadline is not None else None

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self, what: str = "operation"):
        """Raise FetchCancelled if the token has been cancelled."""
        if self.cancelled:
            raise FetchCancelled(f"{what} cancelled")


def request_timeout(cancel: CancelToken | None):
    """
    Timeout for a single request made on behalf of ``cancel``.

    Whatever is left of the deadline, or the client's own timeout when
    there is no deadline.
    """
    if cancel is None:
        return httpx.USE_CLIENT_DEFAULT
    remaining = cancel.remaining()
    if remaining is None:
        return httpx.USE_CLIENT_DEFAULT
    return remaining


def is_cancelled(cancel: CancelToken | None) -> bool:
    return cancel is not None and cancel.cancelled


class Retrieval:
    """Records the state of one retrieval run."""

    def __init__(self, uri: str):
        self.uri = uri
        self.state = RetrievalState.IDLE
        self.error: UpstreamError | None = None
        self.history = [RetrievalState.IDLE]

    def advance(self, state: RetrievalState):
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"invalid retrieval transition {self.state.value} -> {state.value}")
        logger.debug(f"Retrieval of {self.uri}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: UpstreamError):
        """Move to FAILED, recording the stage that failed on the error."""
        if error.stage is None:
            error.stage = self.state.value
        logger.error(f"Retrieval of {self.uri} failed while {self.state.value}: {error}")
        self.error = error
        self.state = RetrievalState.FAILED
        self.history.append(RetrievalState.FAILED)

"""Exception hierarchy for the search bootstrap.

Load failures are runtime conditions the hosting page is expected to degrade
around (hide the search box, show a notice). ``DoubleBootstrapError`` is a
setup defect and is never recovered from.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base error for the search bootstrap."""


class LoadError(BridgeError):
    """Raised when the search module could not be made ready.

    Attributes:
        location: Artifact location involved in the failure, when known.
        cause: Underlying exception raised by the source or the runtime.
    """

    kind = "load_error"

    def __init__(self, message: str, *, location: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.location = location
        self.cause = cause

    def to_dict(self) -> dict[str, str | None]:
        return {
            "kind": self.kind,
            "message": str(self),
            "location": self.location,
            "cause": repr(self.cause) if self.cause is not None else None,
        }


class ResourceLoadFailure(LoadError):
    """An artifact could not be fetched (network error, 404, permission)."""

    kind = "resource_load_failure"

    def __init__(
        self,
        message: str,
        *,
        location: str | None = None,
        cause: BaseException | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, location=location, cause=cause)
        self.status_code = status_code


class InstantiationFailure(LoadError):
    """The fetched artifacts are malformed or rejected by the runtime."""

    kind = "instantiation_failure"


class LoadTimeoutError(LoadError):
    """Loading did not finish within the configured deadline."""

    kind = "load_timeout"


class LoadAbortedError(LoadError):
    """Loading was cancelled before the module settled (shutdown, caller cancel)."""

    kind = "aborted"


class DoubleBootstrapError(BridgeError):
    """The bootstrap (or the global binding) was started a second time."""


class NotReadyError(BridgeError):
    """The published query function was called before the module was ready."""


class InvalidStateTransitionError(BridgeError):
    """Raised when a module handle is moved through an illegal state change."""

"""Exception hierarchy for the Member Portal.

Every refusal the core can produce maps to one RefusalReason, so the
HTTP layer can render a structured body without inspecting messages.
None of these errors is retried automatically.
"""

from typing import Optional

from shared.models import RefusalReason, UnavailableReason


class PortalError(Exception):
    """Base class for all portal errors."""

    reason: RefusalReason = RefusalReason.INVALID_REQUEST

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ToolNotFoundError(PortalError):
    """Raised when a tool id is absent from the registry. Terminal for the request."""

    reason = RefusalReason.NOT_FOUND

    def __init__(self, tool_id: int) -> None:
        self.tool_id = tool_id
        super().__init__(f"Tool '{tool_id}' not found")


class ToolUnavailableError(PortalError):
    """
    Raised when a tool cannot disclose credentials right now.

    Policy refusals (maintenance, offline) and collaborator timeouts share
    this class but keep distinct reasons so callers can tell
    "not entitled" from "try later".
    """

    def __init__(self, tool_id: int, reason: UnavailableReason) -> None:
        self.tool_id = tool_id
        self.unavailable_reason = reason
        super().__init__(f"Tool '{tool_id}' is unavailable ({reason.value})")

    @property
    def reason(self) -> RefusalReason:  # type: ignore[override]
        return RefusalReason(self.unavailable_reason.value)


class UnauthenticatedError(PortalError):
    """Raised when no caller identity could be resolved."""

    reason = RefusalReason.UNAUTHENTICATED

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(PortalError):
    reason = RefusalReason.FORBIDDEN


class InvalidRequestError(PortalError):
    reason = RefusalReason.INVALID_REQUEST


class ConfigurationError(PortalError):
    """Raised when loading or validating configuration or catalog files fails."""


class SecretStoreError(PortalError):
    """
    Raised when the secret store collaborator fails.

    Keeps the underlying exception in orig_exc.
    """

    reason = RefusalReason.TIMEOUT

    def __init__(
        self,
        message: str,
        tool_id: Optional[int] = None,
        orig_exc: Optional[Exception] = None,
    ) -> None:
        self.tool_id = tool_id
        self.orig_exc = orig_exc

        full_msg = "Secret store error"
        if tool_id is not None:
            full_msg += f" (tool: {tool_id})"
        full_msg += f": {message}"
        if orig_exc:
            full_msg += f" (original error: {type(orig_exc).__name__})"
        super().__init__(full_msg)


class SecretNotFoundError(SecretStoreError):
    """The store holds no credential bundle for the tool."""

    reason = RefusalReason.NOT_FOUND


class SecretStoreTimeoutError(SecretStoreError):
    """The store did not answer within the configured timeout."""

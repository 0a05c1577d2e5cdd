"""Wallet Bridge Error Taxonomy.

This module defines the error hierarchy shared by every execution
context. Each error carries a string code following the
``wallet_bridge:<area>/<name>`` pattern, an ``ErrorKind`` used by the
authentication state machine, and a numeric wire code in the
EIP-1193 / JSON-RPC style that is sent back across context boundaries.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

USER_REJECTED_CODE = 4001
UNAUTHORIZED_CODE = 4100
UNSUPPORTED_METHOD_CODE = 4200
DISCONNECTED_CODE = 4900
CHAIN_DISCONNECTED_CODE = 4901
INVALID_PARAMS_CODE = -32602
INTERNAL_ERROR_CODE = -32603
INVALID_REQUEST_CODE = -32600
NETWORK_ERROR_CODE = -32000
RATE_LIMITED_CODE = -32002
TIMEOUT_CODE = -32003


class ErrorKind(str, Enum):
    """Category of a bridge failure, as recorded by a Failed flow."""

    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    USER_REJECTED = "user_rejected"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_FAILURE = "provider_failure"
    NETWORK = "network"
    SESSION = "session"


class BridgeError(Exception):
    """Base exception for all wallet bridge errors.

    Attributes:
        code: Error code following the wallet_bridge:<area>/<name> pattern
        message: Human-readable error message
        details: Optional additional error context
        kind: Taxonomy category
        rpc_code: Numeric code sent on the wire in result messages
    """

    kind: ErrorKind = ErrorKind.PROVIDER_FAILURE
    rpc_code: int = INTERNAL_ERROR_CODE

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to ``{code, kind, message, details}`` dict."""
        return {
            "code": self.code,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }

    def to_response_fields(self) -> dict[str, Any]:
        """Fields merged into a ``*_RESULT`` message for this failure."""
        return {"success": False, "error": self.message, "code": self.rpc_code}


class MessageValidationError(BridgeError):
    """Raised when a message is malformed or misses a required field."""

    kind = ErrorKind.VALIDATION
    rpc_code = INVALID_REQUEST_CODE

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="wallet_bridge:message/invalid",
            message=f"Invalid message: {reason}",
            details=details or {},
        )
        self.reason = reason


class OriginNotAllowedError(BridgeError):
    """Raised when a sender origin is not in the allow-list."""

    kind = ErrorKind.VALIDATION
    rpc_code = INVALID_REQUEST_CODE

    def __init__(self, origin: str | None, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="wallet_bridge:message/origin_not_allowed",
            message=f"Origin not allowed: {origin!r}",
            details={"origin": origin, **(details or {})},
        )
        self.origin = origin


class RateLimitError(BridgeError):
    """Raised when the token bucket denies a request.

    Attributes:
        message_type: Type of the throttled message
    """

    kind = ErrorKind.RATE_LIMIT
    rpc_code = RATE_LIMITED_CODE

    def __init__(self, message_type: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="wallet_bridge:router/rate_limited",
            message=f"Rate limit exceeded for {message_type}",
            details={"message_type": message_type, **(details or {})},
        )
        self.message_type = message_type


class BridgeTimeoutError(BridgeError):
    """Raised when a step, request or operation outlives its timeout.

    Attributes:
        operation: What timed out (a state name, message type or operation id)
        timeout: The limit that was exceeded, in seconds
    """

    kind = ErrorKind.TIMEOUT
    rpc_code = TIMEOUT_CODE

    def __init__(
        self, operation: str, timeout: float, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            code="wallet_bridge:timeout/exceeded",
            message=f"{operation} timed out after {timeout:g}s",
            details={"operation": operation, "timeout": timeout, **(details or {})},
        )
        self.operation = operation
        self.timeout = timeout


class WalletError(BridgeError):
    """Base class for failures reported by, or about, the wallet provider."""

    kind = ErrorKind.PROVIDER_FAILURE
    rpc_code = INTERNAL_ERROR_CODE


class UserRejectedError(WalletError):
    """Raised when the user declines a wallet request (provider code 4001)."""

    kind = ErrorKind.USER_REJECTED
    rpc_code = USER_REJECTED_CODE

    def __init__(
        self, message: str = "User rejected the request", details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            code="wallet_bridge:wallet/user_rejected", message=message, details=details or {}
        )


class ProviderUnavailableError(WalletError):
    """Raised when no wallet provider is installed or selectable."""

    kind = ErrorKind.PROVIDER_UNAVAILABLE
    rpc_code = DISCONNECTED_CODE

    def __init__(
        self, message: str = "No wallet provider found", details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            code="wallet_bridge:wallet/unavailable", message=message, details=details or {}
        )


class ProviderFailureError(WalletError):
    """Raised for any other wallet failure (empty accounts, RPC errors)."""

    def __init__(
        self,
        message: str,
        provider_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="wallet_bridge:wallet/provider_failure",
            message=message,
            details={"provider_code": provider_code, **(details or {})},
        )
        self.provider_code = provider_code


class NetworkError(BridgeError):
    """Raised when the remote authentication API is unreachable or fails.

    Attributes:
        status_code: HTTP status of the failed response, if any
    """

    kind = ErrorKind.NETWORK
    rpc_code = NETWORK_ERROR_CODE

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="wallet_bridge:api/network",
            message=message,
            details={"status_code": status_code, **(details or {})},
        )
        self.status_code = status_code


class SessionError(BridgeError):
    """Raised when a session token is missing, invalid or expired."""

    kind = ErrorKind.SESSION
    rpc_code = UNAUTHORIZED_CODE

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="wallet_bridge:session/invalid", message=message, details=details or {}
        )


class InvalidTransitionError(BridgeError):
    """Raised when attempting an illegal authentication state transition.

    Attributes:
        from_state: The current state
        to_state: The attempted target state
    """

    kind = ErrorKind.VALIDATION
    rpc_code = INTERNAL_ERROR_CODE

    def __init__(
        self, from_state: str, to_state: str, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            code="wallet_bridge:auth/invalid_transition",
            message=f"Invalid transition from '{from_state}' to '{to_state}'",
            details={"from_state": from_state, "to_state": to_state, **(details or {})},
        )
        self.from_state = from_state
        self.to_state = to_state


class DuplicateOperationError(BridgeError):
    """Raised when an operation id is already being tracked."""

    kind = ErrorKind.VALIDATION
    rpc_code = INTERNAL_ERROR_CODE

    def __init__(self, operation_id: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="wallet_bridge:operation/duplicate",
            message=f"Operation already tracked: {operation_id}",
            details={"operation_id": operation_id, **(details or {})},
        )
        self.operation_id = operation_id


class ProviderRpcError(Exception):
    """EIP-1193 error raised by a wallet provider's ``request``.

    Attributes:
        code: Numeric provider error code (4001 means the user rejected)
        message: Provider-supplied message
        data: Optional provider-specific payload
    """

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def wallet_error_from(exc: BaseException) -> BridgeError:
    """Map an exception raised while talking to a wallet onto the taxonomy.

    Bridge errors pass through unchanged; ``ProviderRpcError`` with code
    4001 becomes ``UserRejectedError``; code 4900 becomes
    ``ProviderUnavailableError``; anything else is a ``ProviderFailureError``.

    Example:
        >>> wallet_error_from(ProviderRpcError(4001, "User denied")).kind
        <ErrorKind.USER_REJECTED: 'user_rejected'>
    """
    if isinstance(exc, BridgeError):
        return exc
    if isinstance(exc, ProviderRpcError):
        if exc.code == USER_REJECTED_CODE:
            return UserRejectedError(exc.message or "User rejected the request")
        if exc.code in (DISCONNECTED_CODE, CHAIN_DISCONNECTED_CODE):
            return ProviderUnavailableError(exc.message or "Wallet provider disconnected")
        return ProviderFailureError(exc.message or "Wallet request failed", provider_code=exc.code)
    return ProviderFailureError(str(exc) or type(exc).__name__)


def error_response_fields(exc: BaseException) -> dict[str, Any]:
    """Wire fields ``{success, error, code}`` describing any exception."""
    if isinstance(exc, BridgeError):
        return exc.to_response_fields()
    return {"success": False, "error": str(exc) or type(exc).__name__, "code": INTERNAL_ERROR_CODE}

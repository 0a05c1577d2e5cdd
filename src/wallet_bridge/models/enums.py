"""Enumerations shared across wallet bridge models."""

from enum import Enum


class AccountMode(str, Enum):
    """Account mode requested at verification time."""

    LIVE = "live"
    DEMO = "demo"


class AuthState(str, Enum):
    """States of the Sign-In With Ethereum flow.

    IDLE is the only entry state. AUTHENTICATED and FAILED are terminal.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_CHALLENGE = "awaiting_challenge"
    AWAITING_SIGNATURE = "awaiting_signature"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in (AuthState.AUTHENTICATED, AuthState.FAILED)


class MessageType(str, Enum):
    """Protocol message types.

    Values carry the default ``WB_`` prefix; ``RESULT_SUFFIX`` is appended
    to a request type to form its reply type.
    """

    PING = "WB_PING"
    CHECK_EXTENSION = "WB_CHECK_EXTENSION"
    CONNECT = "WB_CONNECT"
    GET_SESSION = "WB_GET_SESSION"
    VALIDATE_SESSION = "WB_VALIDATE_SESSION"
    DISCONNECT = "WB_DISCONNECT"
    SESSION_CHANGED = "WB_SESSION_CHANGED"
    EXTENSION_PRESENT = "WB_EXTENSION_PRESENT"


RESULT_SUFFIX = "_RESULT"
DEFAULT_PROTOCOL_PREFIX = "WB_"


def prefixed(message_type: MessageType, prefix: str) -> str:
    """Return ``message_type`` under a non-default protocol prefix.

    Example:
        >>> prefixed(MessageType.CONNECT, "CJ_")
        'CJ_CONNECT'
    """
    return prefix + message_type.value[len(DEFAULT_PROTOCOL_PREFIX) :]


def result_type(message_type: str) -> str:
    """Return the reply type for ``message_type``.

    Example:
        >>> result_type("WB_CONNECT")
        'WB_CONNECT_RESULT'
    """
    return f"{message_type}{RESULT_SUFFIX}"

"""Wallet bridge data models."""

from wallet_bridge.models.base import BridgeBaseModel
from wallet_bridge.models.enums import (
    DEFAULT_PROTOCOL_PREFIX,
    RESULT_SUFFIX,
    AccountMode,
    AuthState,
    MessageType,
    prefixed,
    result_type,
)
from wallet_bridge.models.ids import generate_id
from wallet_bridge.models.messages import BridgeMessage, ResultMessage
from wallet_bridge.models.session import AuthSession, Challenge, SessionValidation, VerifyResult

__all__ = [
    "DEFAULT_PROTOCOL_PREFIX",
    "RESULT_SUFFIX",
    "AccountMode",
    "AuthSession",
    "AuthState",
    "BridgeBaseModel",
    "BridgeMessage",
    "Challenge",
    "MessageType",
    "ResultMessage",
    "SessionValidation",
    "VerifyResult",
    "generate_id",
    "prefixed",
    "result_type",
]

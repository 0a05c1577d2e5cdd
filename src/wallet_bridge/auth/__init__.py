"""Sign-In With Ethereum flow: wallet provider, remote API, SIWE text and state machine."""

from wallet_bridge.auth.api import AuthApi, HttpAuthApi, calculate_backoff
from wallet_bridge.auth.controller import AuthFlowController
from wallet_bridge.auth.machine import VALID_TRANSITIONS, FlowStatus, can_transition, transition
from wallet_bridge.auth.provider import DEFAULT_WALLET_PREFERENCE, ProviderSelector, WalletProvider
from wallet_bridge.auth.siwe import SiweMessage, create_siwe_message, parse_siwe_message

__all__ = [
    "DEFAULT_WALLET_PREFERENCE",
    "VALID_TRANSITIONS",
    "AuthApi",
    "AuthFlowController",
    "FlowStatus",
    "HttpAuthApi",
    "ProviderSelector",
    "SiweMessage",
    "WalletProvider",
    "calculate_backoff",
    "can_transition",
    "create_siwe_message",
    "parse_siwe_message",
    "transition",
]

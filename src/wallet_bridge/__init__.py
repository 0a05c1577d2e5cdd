"""Wallet Bridge.

Cross-context Sign-In With Ethereum bridge: a page context, a relay and a
suspendable background coordinator exchange typed messages through
routers that validate origins, throttle with a token bucket and collapse
duplicate in-flight requests, while an authentication state machine walks
connect, challenge, sign and verify against pluggable wallet, API and
storage collaborators.

Example:
    >>> from wallet_bridge import BridgeConfig, MessageRouter
    >>> router = MessageRouter(BridgeConfig())
    >>> router.register("WB_PING", lambda message: {"pong": True})
"""

__version__ = "0.3.0"

from wallet_bridge.config import BridgeConfig
from wallet_bridge.errors import BridgeError, ErrorKind
from wallet_bridge.messaging.router import MessageRouter

__all__ = [
    "__version__",
    "BridgeConfig",
    "BridgeError",
    "ErrorKind",
    "MessageRouter",
]

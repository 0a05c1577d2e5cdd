"""Wallet provider capability and provider selection.

Only the request/response contract of a wallet matters here. Browsers
with several wallets installed expose them through a root provider's
``providers`` list; selection flattens that list and applies an ordered
preference for well-known wallets before falling back to the first
candidate.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Protocol, runtime_checkable

from wallet_bridge.errors import ProviderUnavailableError

DEFAULT_WALLET_PREFERENCE = ("metamask", "rabby", "brave")


@runtime_checkable
class WalletProvider(Protocol):
    """EIP-1193 style wallet capability.

    Attributes:
        wallet_id: Identifier of the wallet implementation (e.g. "metamask"), if known
        chain_id: Hex chain id currently selected, if known
        selected_address: Currently selected account, if any
        providers: Nested providers for multi-wallet environments, if any
    """

    wallet_id: str | None
    chain_id: str | None
    selected_address: str | None
    providers: Sequence[WalletProvider] | None

    async def request(self, method: str, params: Sequence[Any] | None = None) -> Any:
        """Perform an RPC request. Raises ProviderRpcError on wallet errors."""
        ...


class ProviderSelector:
    """Picks one provider using an ordered preference of wallet ids.

    Example:
        >>> selector = ProviderSelector()
        >>> selector.preference
        ('metamask', 'rabby', 'brave')
    """

    def __init__(self, preference: Iterable[str] = DEFAULT_WALLET_PREFERENCE) -> None:
        self.preference = tuple(preference)

    def candidates(
        self, roots: WalletProvider | Iterable[WalletProvider | None] | None
    ) -> list[WalletProvider]:
        """Flatten roots into candidate providers, expanding ``providers`` lists."""
        if roots is None:
            return []
        if isinstance(roots, WalletProvider):
            roots = [roots]
        flattened: list[WalletProvider] = []
        for root in roots:
            if root is None:
                continue
            nested = root.providers
            if nested:
                flattened.extend(provider for provider in nested if provider is not None)
            else:
                flattened.append(root)
        return flattened

    def select(
        self, roots: WalletProvider | Iterable[WalletProvider | None] | None
    ) -> WalletProvider:
        """Return the preferred provider.

        Raises:
            ProviderUnavailableError: If there is no candidate at all
        """
        candidates = self.candidates(roots)
        if not candidates:
            raise ProviderUnavailableError()
        for wallet_id in self.preference:
            for candidate in candidates:
                if (candidate.wallet_id or "").lower() == wallet_id:
                    return candidate
        return candidates[0]

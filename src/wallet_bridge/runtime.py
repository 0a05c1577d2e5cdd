"""In-process wiring of all three contexts.

``LocalBridge`` connects a page, its relay and the background coordinator
through JSON message channels and runs each side as its own pump. It is
what the CLI's ``simulate`` command and the end-to-end tests drive.

Example:
    >>> async with LocalBridge(storage=..., api=..., providers=...) as bridge:
    ...     result = await bridge.page.connect()
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

from wallet_bridge.auth.api import AuthApi
from wallet_bridge.auth.controller import ProviderSource
from wallet_bridge.background.alarms import AlarmHost, AsyncioAlarmHost
from wallet_bridge.background.coordinator import BackgroundCoordinator
from wallet_bridge.config import BridgeConfig
from wallet_bridge.messaging.channel import ContextRunner, MessageChannel
from wallet_bridge.messaging.rate_limit import Clock
from wallet_bridge.observability import get_logger
from wallet_bridge.page import PageClient
from wallet_bridge.relay import RelayBridge
from wallet_bridge.storage.base import KeyValueStorage

logger = get_logger(__name__)

DEFAULT_PAGE_ORIGIN = "http://localhost:3000"


class LocalBridge:
    """A page, a relay and a background coordinator running on one event loop.

    Attributes:
        coordinator: Background context
        relay: Relay attached to the page
        page: Page-side client
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        storage: KeyValueStorage,
        api: AuthApi,
        providers: ProviderSource,
        alarm_host: AlarmHost | None = None,
        origin: str = DEFAULT_PAGE_ORIGIN,
        consumer_id: str | None = None,
        clock: Clock | None = None,
        wall_clock: Clock | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self.origin = origin
        self._owns_alarm_host = alarm_host is None
        self.alarm_host = alarm_host or AsyncioAlarmHost()
        self.coordinator = BackgroundCoordinator(
            self.config,
            storage=storage,
            api=api,
            providers=providers,
            alarm_host=self.alarm_host,
            clock=clock,
            wall_clock=wall_clock,
        )
        self.page_to_relay = MessageChannel("page->relay")
        self.relay_to_page = MessageChannel("relay->page")
        self.relay = RelayBridge(self.coordinator, self.relay_to_page, origin, self.config)
        self.page = PageClient(
            self.page_to_relay, origin, self.config, consumer_id=consumer_id
        )
        self._runners = [
            ContextRunner("relay", self.page_to_relay, self.relay.handle),
            ContextRunner("page", self.relay_to_page, self.page.handle_inbound),
        ]

    async def start(self) -> None:
        await self.coordinator.start()
        for runner in self._runners:
            runner.start()
        self.relay.start()
        logger.info("wallet_bridge.runtime.started", origin=self.origin)

    async def stop(self) -> None:
        self.page.fail_pending()
        self.relay.stop()
        for runner in self._runners:
            await runner.stop()
        self.page_to_relay.close()
        self.relay_to_page.close()
        if self._owns_alarm_host and isinstance(self.alarm_host, AsyncioAlarmHost):
            await self.alarm_host.close()
        logger.info("wallet_bridge.runtime.stopped", origin=self.origin)

    async def restart_background(self) -> None:
        """Simulate the host suspending and cold-starting the background."""
        self.coordinator.suspend()
        await self.coordinator.start()

    async def settle(self) -> None:
        """Wait for messages currently in flight between contexts to be handled."""
        for runner in self._runners:
            await runner.drain()

    async def __aenter__(self) -> LocalBridge:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Any:
        await self.stop()

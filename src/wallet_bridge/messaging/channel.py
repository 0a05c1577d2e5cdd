"""Message channels between isolated execution contexts.

Contexts share no memory: every post is serialized to JSON and parsed
back, so the receiver only ever sees plain data. A ``ContextRunner``
pumps one channel and routes each envelope as an independent task,
which lets routed handlers interleave at their await points the way
separate single-threaded contexts would.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from wallet_bridge.models.messages import BridgeMessage, ResultMessage
from wallet_bridge.observability import bind_context, get_logger

logger = get_logger(__name__)

EnvelopeHandler = Callable[[dict[str, Any], "str | None"], Awaitable[Any]]


@dataclass(frozen=True)
class Envelope:
    """A delivered message and the origin of the context that posted it."""

    data: dict[str, Any]
    origin: str | None


def _to_plain(message: BridgeMessage | ResultMessage | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(message, (BridgeMessage, ResultMessage)):
        message = message.to_wire()
    # round trip so that no live object crosses the boundary
    return json.loads(json.dumps(dict(message)))


class MessageChannel:
    """One-directional, unbounded queue of JSON envelopes.

    Example:
        >>> channel = MessageChannel("page->relay")
        >>> channel.post({"type": "WB_PING"}, origin="http://localhost:3000")
        >>> channel.pending
        1
    """

    def __init__(self, name: str = "channel") -> None:
        self.name = name
        self._queue: asyncio.Queue[Envelope] = asyncio.Queue()
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    def post(
        self,
        message: BridgeMessage | ResultMessage | Mapping[str, Any],
        origin: str | None = None,
    ) -> None:
        """Serialize ``message`` and enqueue it.

        Raises:
            RuntimeError: If the channel is closed
            TypeError: If the message is not JSON-serializable
        """
        if self._closed:
            raise RuntimeError(f"Channel {self.name} is closed")
        self._queue.put_nowait(Envelope(data=_to_plain(message), origin=origin))

    async def receive(self) -> Envelope:
        return await self._queue.get()

    def close(self) -> None:
        self._closed = True


class ContextRunner:
    """Pumps a channel into a handler, one task per envelope."""

    def __init__(self, name: str, channel: MessageChannel, handler: EnvelopeHandler) -> None:
        self.name = name
        self.channel = channel
        self._handler = handler
        self._pump: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def running(self) -> bool:
        return self._pump is not None and not self._pump.done()

    def start(self) -> None:
        if self.running:
            return
        self._pump = asyncio.get_running_loop().create_task(
            self._run(), name=f"wallet-bridge-{self.name}"
        )

    async def stop(self) -> None:
        """Stop pumping and cancel envelopes still being handled."""
        if self._pump is not None:
            self._pump.cancel()
            await asyncio.gather(self._pump, return_exceptions=True)
            self._pump = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def drain(self) -> None:
        """Wait until every envelope handed out so far has been handled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self) -> None:
        # the pump runs in its own task; handler tasks inherit this binding
        bind_context(context=self.name)
        while True:
            envelope = await self.channel.receive()
            task = asyncio.get_running_loop().create_task(
                self._handler(envelope.data, envelope.origin)
            )
            self._tasks.add(task)
            task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "wallet_bridge.channel.handler_error",
                runner=self.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )

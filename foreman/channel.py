import asyncio
from collections.abc import AsyncIterator, Callable
from typing import TypeAlias

from foreman.events import Update
from foreman.logging import get_logger

Handler: TypeAlias = Callable[[Update], None]

_logger = get_logger(__name__)


class UpdateFeed:
    """Per-session pub/sub feed of update events.

    - subscribe(handler): register a plain callable, invoked synchronously on publish.
    - publish(update): deliver to every subscriber in subscription order.
      Handlers see updates in publish order. Errors are logged, never propagated.
    - stream(): async iterator over updates published after the call.
    """

    def __init__(self) -> None:
        self._handlers: list[Handler] = []

    def subscribe(self, handler: Handler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: Handler) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def publish(self, update: Update) -> None:
        for handler in list(self._handlers):
            try:
                handler(update)
            except Exception:
                _logger.exception(
                    "Update handler %s failed for %s",
                    getattr(handler, "__qualname__", repr(handler)),
                    update.type.value,
                )

    async def stream(self) -> AsyncIterator[Update]:
        queue: asyncio.Queue[Update] = asyncio.Queue()
        self.subscribe(queue.put_nowait)
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue.put_nowait)

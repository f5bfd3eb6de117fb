import asyncio
from collections.abc import Callable

from foreman.channel import Handler
from foreman.events import Update
from foreman.logging import get_logger
from foreman.notifiers.base import Notifier

_logger = get_logger(__name__)


class NotifierDispatcher:
    """Fans every published update out to the configured notifiers.

    Feed handlers are synchronous, so each send runs as its own task. Send
    failures are logged and never reach the publisher.
    """

    def __init__(self, get_notifiers: Callable[[], dict[str, Notifier]]):
        self._get_notifiers = get_notifiers
        self._tasks: set[asyncio.Task] = set()

    @property
    def handler(self) -> Handler:
        return self.dispatch

    def dispatch(self, update: Update) -> None:
        for name, notifier in self._get_notifiers().items():
            task = asyncio.get_running_loop().create_task(self._send(name, notifier, update))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _send(self, name: str, notifier: Notifier, update: Update) -> None:
        try:
            await notifier.send(update)
        except Exception:
            _logger.exception("Notifier %r failed for %s update", name, update.type.value)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

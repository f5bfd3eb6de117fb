import asyncio
from collections.abc import Coroutine

from foreman.agents.factory import create_agent
from foreman.approval.gate import ApprovalGate
from foreman.config import Config, get_config
from foreman.logging import get_logger
from foreman.notifiers import Notifier, NotifierDispatcher, create_notifiers
from foreman.session.registry import AgentFactory, SessionRegistry

_logger = get_logger(__name__)


class Runtime:
    def __init__(self, config: Config | None = None, agent_factory: AgentFactory | None = None):
        self.config = config or get_config()
        self.gate = ApprovalGate(timeout=self.config.approval_timeout)
        self.sessions = SessionRegistry(
            self.gate,
            agent_factory or (lambda: create_agent(self.config.agent, self.config)),
            token_limit=self.config.token_limit,
            token_warning_ratio=self.config.token_warning_ratio,
        )
        self.notifiers: dict[str, Notifier] = {}
        self.dispatcher = NotifierDispatcher(lambda: self.notifiers)
        self._tasks: set[asyncio.Task] = set()
        self._connected = False

    async def connect(self) -> None:
        self.notifiers = create_notifiers(self.config)
        if self.notifiers:
            _logger.info("Notifiers enabled: %s", ", ".join(self.notifiers))
        self.sessions.feed.subscribe(self.dispatcher.handler)
        self._connected = True

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        await self.sessions.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.dispatcher.drain()
        self.sessions.feed.unsubscribe(self.dispatcher.handler)
        self._connected = False


_runtime: Runtime | None = None
_runtime_lock = asyncio.Lock()


async def get_runtime_async() -> Runtime:
    global _runtime
    async with _runtime_lock:
        if _runtime is None:
            _runtime = Runtime()
            await _runtime.connect()
    return _runtime


def get_runtime() -> Runtime:
    if _runtime is None:
        raise RuntimeError("Runtime not initialized. Call get_runtime_async() first.")
    if not _runtime._connected:
        raise RuntimeError("Runtime not connected. Call await runtime.connect() first.")
    return _runtime


async def reset_runtime() -> None:
    global _runtime
    if _runtime is not None:
        await _runtime.close()
        _runtime = None

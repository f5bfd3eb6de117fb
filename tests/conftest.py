import asyncio
import json
from collections.abc import Callable

import pytest
import pytest_asyncio

from foreman.agents.base import Agent, AgentKind, RecordCallback
from foreman.agents.stream import StreamReader
from foreman.approval.gate import ApprovalGate
from foreman.channel import UpdateFeed
from foreman.events import Update, UpdateType
from foreman.session.orchestrator import SessionOrchestrator


def record(type_: str, **fields) -> str:
    return json.dumps({"type": type_, **fields}) + "\n"


class FakeAgent(Agent):
    """Scripted agent: feeds fixed chunks, optionally blocking until released or cancelled."""

    kind = AgentKind.CLAUDE
    label = "Fake"

    def __init__(
        self,
        chunks: list[str] | None = None,
        exit_code: int = 0,
        error: Exception | None = None,
        block: bool = False,
    ):
        self.chunks = chunks or []
        self.exit_code = exit_code
        self.error = error
        self.block = block
        self.calls: list[tuple[str, list[dict]]] = []
        self.release = asyncio.Event()
        self.cancelled = False

    async def run(
        self,
        prompt: str,
        history: list[dict],
        reader: StreamReader,
        on_record: RecordCallback | None = None,
    ) -> int:
        self.calls.append((prompt, history))
        if self.error:
            raise self.error
        for chunk in self.chunks:
            for rec in reader.feed(chunk):
                if on_record:
                    on_record(rec)
        if self.block:
            await self.release.wait()
            if self.cancelled:
                return -15
        return self.exit_code

    async def cancel(self) -> None:
        self.cancelled = True
        self.release.set()


class Recorder:
    def __init__(self, feed: UpdateFeed):
        self.updates: list[Update] = []
        feed.subscribe(self.updates.append)

    def of_type(self, type_: UpdateType) -> list[Update]:
        return [u for u in self.updates if u.type is type_]

    @property
    def messages(self) -> list[str]:
        return [u.message for u in self.updates]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest.fixture
def feed() -> UpdateFeed:
    return UpdateFeed()


@pytest.fixture
def recorder(feed: UpdateFeed) -> Recorder:
    return Recorder(feed)


@pytest_asyncio.fixture
async def gate(feed: UpdateFeed) -> ApprovalGate:
    gate = ApprovalGate(timeout=5, feed=feed)
    yield gate
    gate.clear_all()


def make_orchestrator(agent: Agent, gate: ApprovalGate, feed: UpdateFeed, **kwargs) -> SessionOrchestrator:
    return SessionOrchestrator(agent=agent, gate=gate, feed=feed, **kwargs)

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import StrEnum
from typing import ClassVar, TypeAlias

from foreman.agents.stream import StreamReader, StreamRecord

RecordCallback: TypeAlias = Callable[[StreamRecord], None]


class AgentKind(StrEnum):
    CLAUDE = "claude"
    CODEX = "codex"


class Agent(ABC):
    """Transport for one coding agent.

    ``run`` pushes everything the agent produces into the reader and returns
    the exit status (0 for agents that are API calls rather than processes).
    Failing to start raises ``AgentStartError``.
    """

    kind: ClassVar[AgentKind]
    label: ClassVar[str]

    @abstractmethod
    async def run(
        self,
        prompt: str,
        history: list[dict],
        reader: StreamReader,
        on_record: RecordCallback | None = None,
    ) -> int: ...

    async def cancel(self) -> None:
        return None

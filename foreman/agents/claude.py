import asyncio
import codecs
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

from foreman.agents.base import Agent, AgentKind, RecordCallback
from foreman.agents.stream import StreamReader
from foreman.constants import CLAUDE_BINARY, STREAM_READ_SIZE, TERMINATE_GRACE_SECONDS
from foreman.errors import AgentStartError
from foreman.logging import get_logger

_logger = get_logger(__name__)


@dataclass(eq=False)
class _Launch:
    cancelled: bool = False


class ClaudeCodeAgent(Agent):
    """Runs the Claude Code CLI in non-interactive stream-json mode."""

    kind = AgentKind.CLAUDE
    label = "Claude"

    def __init__(
        self,
        binary: str = CLAUDE_BINARY,
        working_directory: Path | str | None = None,
        env: dict[str, str] | None = None,
    ):
        self.binary = binary
        self.working_directory = working_directory
        self.env = env
        self._process: asyncio.subprocess.Process | None = None
        self._launches: set[_Launch] = set()

    def command(self, prompt: str) -> list[str]:
        return [self.binary, "--print", "--output-format", "stream-json", prompt]

    async def run(
        self,
        prompt: str,
        history: list[dict],
        reader: StreamReader,
        on_record: RecordCallback | None = None,
    ) -> int:
        launch = _Launch()
        self._launches.add(launch)
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command(prompt),
                cwd=self.working_directory,
                env=self.env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            _logger.error("Failed to spawn %s: %s", self.binary, e)
            raise AgentStartError(f"Failed to start Claude Code: {e}") from e
        finally:
            self._launches.discard(launch)

        try:
            if launch.cancelled:
                _logger.info("Cancelled while starting, stopping pid %d", process.pid)
                await self._stop(process)
            else:
                self._process = process
            await asyncio.gather(
                self._pump_stdout(process.stdout, reader, on_record),
                self._pump_stderr(process.stderr, reader),
            )
            return await process.wait()
        except asyncio.CancelledError:
            await self._stop(process)
            raise
        finally:
            if self._process is process:
                self._process = None

    async def cancel(self) -> None:
        # Runs still waiting on spawn stop as soon as their process exists.
        for launch in self._launches:
            launch.cancelled = True
        if self._process is not None:
            await self._stop(self._process)

    async def _stop(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        with suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            with suppress(ProcessLookupError):
                process.kill()

    async def _pump_stdout(
        self,
        stream: asyncio.StreamReader | None,
        reader: StreamReader,
        on_record: RecordCallback | None,
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while chunk := await stream.read(STREAM_READ_SIZE):
            for record in reader.feed(decoder.decode(chunk)):
                if on_record:
                    on_record(record)
        if tail := decoder.decode(b"", final=True):
            for record in reader.feed(tail):
                if on_record:
                    on_record(record)

    async def _pump_stderr(self, stream: asyncio.StreamReader | None, reader: StreamReader) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while chunk := await stream.read(STREAM_READ_SIZE):
            text = decoder.decode(chunk)
            reader.feed_stderr(text)
            _logger.debug("claude stderr: %s", text.rstrip())

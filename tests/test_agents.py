import asyncio
import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from foreman.agents.base import AgentKind
from foreman.agents.claude import ClaudeCodeAgent
from foreman.agents.codex import CodexAgent
from foreman.agents.factory import create_agent
from foreman.agents.stream import DEFAULT_TRUNCATION_RULES, StreamReader
from foreman.config import Config
from foreman.constants import CODEX_SYSTEM_PROMPT
from foreman.errors import AgentStartError


def script(tmp_path: Path, body: str) -> str:
    path = tmp_path / "claude"
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755)
    return str(path)


def completion(content: str, finish_reason: str = "stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)]
    )


class TestClaudeCodeAgent:
    def test_command(self):
        agent = ClaudeCodeAgent(binary="claude")

        assert agent.command("fix it") == ["claude", "--print", "--output-format", "stream-json", "fix it"]

    @pytest.mark.asyncio
    async def test_streams_stdout_into_reader(self, tmp_path: Path):
        lines = [
            json.dumps({"type": "assistant", "content": "hello"}),
            json.dumps({"type": "tool_use", "tool": "Bash", "tool_input": {"command": "ls"}}),
        ]
        body = "\n".join(f"echo '{line}'" for line in lines)
        body += "\nprintf '%s' '" + json.dumps({"type": "result", "result": " world"}) + "'"
        agent = ClaudeCodeAgent(binary=script(tmp_path, body), working_directory=tmp_path)
        reader = StreamReader()
        records = []

        exit_code = await agent.run("prompt", [], reader, records.append)

        assert exit_code == 0
        assert reader.finalize().text == "hello world"
        assert [r.type for r in records] == ["assistant", "tool_use"]

    @pytest.mark.asyncio
    async def test_stderr_truncation(self, tmp_path: Path):
        agent = ClaudeCodeAgent(binary=script(tmp_path, "echo 'response truncated' >&2\nexit 1"))
        reader = StreamReader()

        exit_code = await agent.run("prompt", [], reader)

        assert exit_code == 1
        result = reader.finalize()
        assert result.truncation == DEFAULT_TRUNCATION_RULES.rules[0].message
        assert result.text == ""

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path: Path):
        agent = ClaudeCodeAgent(binary=str(tmp_path / "does-not-exist"))

        with pytest.raises(AgentStartError, match="Failed to start Claude Code"):
            await agent.run("prompt", [], StreamReader())

    @pytest.mark.asyncio
    async def test_cancel_terminates_process(self, tmp_path: Path):
        agent = ClaudeCodeAgent(binary=script(tmp_path, "exec sleep 30"))
        run = asyncio.create_task(agent.run("prompt", [], StreamReader()))
        async with asyncio.timeout(5):
            while agent._process is None:
                await asyncio.sleep(0.01)

        await agent.cancel()

        assert await run != 0
        assert agent._process is None

    @pytest.mark.asyncio
    async def test_cancel_while_starting_stops_process(self, tmp_path: Path):
        marker = tmp_path / "ran"
        agent = ClaudeCodeAgent(binary=script(tmp_path, f"sleep 0.3\ntouch {marker}"))
        run = asyncio.create_task(agent.run("prompt", [], StreamReader()))
        await asyncio.sleep(0)

        await agent.cancel()

        assert await run != 0
        await asyncio.sleep(0.5)
        assert not marker.exists()
        assert agent._process is None

    @pytest.mark.asyncio
    async def test_task_cancellation_stops_process(self, tmp_path: Path):
        agent = ClaudeCodeAgent(binary=script(tmp_path, "exec sleep 30"))
        run = asyncio.create_task(agent.run("prompt", [], StreamReader()))
        async with asyncio.timeout(5):
            while agent._process is None:
                await asyncio.sleep(0.01)
        process = agent._process

        run.cancel()

        with pytest.raises(asyncio.CancelledError):
            await run
        assert process.returncode is not None
        assert agent._process is None

    @pytest.mark.asyncio
    async def test_cancel_without_process(self):
        await ClaudeCodeAgent().cancel()


class TestCodexAgent:
    def test_build_messages(self):
        history = [{"role": "user", "content": "before"}, {"role": "assistant", "content": "ok"}]

        messages = CodexAgent().build_messages("now", history)

        assert messages[0] == {"role": "system", "content": CODEX_SYSTEM_PROMPT}
        assert messages[1:3] == history
        assert messages[-1] == {"role": "user", "content": "now"}

    @pytest.mark.asyncio
    async def test_feeds_reply_as_result(self):
        reader = StreamReader()
        records = []
        with patch("litellm.acompletion", AsyncMock(return_value=completion("git push origin dev"))) as mock:
            exit_code = await CodexAgent(model="gpt-test", api_key="k").run("push", [], reader, records.append)

        assert exit_code == 0
        assert reader.finalize().text == "git push origin dev"
        assert [r.type for r in records] == ["result"]
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["temperature"] == 0.2
        assert kwargs["api_key"] == "k"

    @pytest.mark.asyncio
    async def test_length_finish_is_truncation(self):
        reader = StreamReader()
        with patch("litellm.acompletion", AsyncMock(return_value=completion("partial", "length"))):
            await CodexAgent(api_key="k").run("write", [], reader)

        result = reader.finalize()
        assert result.text == "partial"
        assert result.truncation == DEFAULT_TRUNCATION_RULES.rules[2].message


class TestFactory:
    def test_claude(self, tmp_path: Path):
        agent = create_agent(AgentKind.CLAUDE, Config(working_directory=tmp_path, claude_binary="my-claude"))

        assert isinstance(agent, ClaudeCodeAgent)
        assert agent.binary == "my-claude"
        assert agent.working_directory == tmp_path

    @pytest.mark.asyncio
    async def test_codex_without_key_fails_on_run(self):
        agent = create_agent(AgentKind.CODEX, Config(openai_api_key=None))

        assert isinstance(agent, CodexAgent)
        with patch("litellm.acompletion", AsyncMock()) as mock, pytest.raises(AgentStartError, match="OPENAI_API_KEY"):
            await agent.run("push", [], StreamReader())
        mock.assert_not_called()

    def test_codex(self):
        agent = create_agent(AgentKind.CODEX, Config(openai_api_key="sk", codex_model="gpt-x"))

        assert isinstance(agent, CodexAgent)
        assert agent.model == "gpt-x"

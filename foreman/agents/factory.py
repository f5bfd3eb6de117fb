from typing import TYPE_CHECKING

from foreman.agents.base import Agent, AgentKind
from foreman.agents.claude import ClaudeCodeAgent
from foreman.agents.codex import CodexAgent
from foreman.errors import AgentStartError

if TYPE_CHECKING:
    from foreman.config import Config


def create_agent(kind: AgentKind, config: "Config") -> Agent:
    match kind:
        case AgentKind.CLAUDE:
            return ClaudeCodeAgent(
                binary=config.claude_binary,
                working_directory=config.working_directory,
                env=config.agent_env,
            )
        case AgentKind.CODEX:
            return CodexAgent(model=config.codex_model, api_key=config.openai_api_key)
    raise AgentStartError(f"Unknown agent: {kind}")

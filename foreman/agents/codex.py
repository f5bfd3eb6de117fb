import json

import litellm

from foreman.agents.base import Agent, AgentKind, RecordCallback
from foreman.agents.retry import with_retry
from foreman.agents.stream import MAX_TOKENS_SENTINEL, StreamReader
from foreman.constants import CODEX_MODEL, CODEX_SYSTEM_PROMPT, CODEX_TEMPERATURE
from foreman.errors import AgentStartError


class CodexAgent(Agent):
    """Chat-completion agent. The reply is fed to the reader as a single result record."""

    kind = AgentKind.CODEX
    label = "ChatGPT Codex"

    def __init__(self, model: str = CODEX_MODEL, api_key: str | None = None):
        self.model = model
        self.api_key = api_key

    def build_messages(self, prompt: str, history: list[dict]) -> list[dict]:
        return [
            {"role": "system", "content": CODEX_SYSTEM_PROMPT},
            *({"role": m["role"], "content": m["content"]} for m in history),
            {"role": "user", "content": prompt},
        ]

    async def run(
        self,
        prompt: str,
        history: list[dict],
        reader: StreamReader,
        on_record: RecordCallback | None = None,
    ) -> int:
        if not self.api_key:
            raise AgentStartError("ChatGPT Codex is not configured (missing OPENAI_API_KEY)")
        response = await with_retry(
            litellm.acompletion,
            model=self.model,
            messages=self.build_messages(prompt, history),
            temperature=CODEX_TEMPERATURE,
            api_key=self.api_key,
        )
        choice = response.choices[0]
        content = choice.message.content or ""

        lines = [json.dumps({"type": "result", "result": content})]
        if choice.finish_reason == "length":
            lines.append(json.dumps({"type": "result", "stop_reason": MAX_TOKENS_SENTINEL}))

        for record in reader.feed("\n".join(lines) + "\n"):
            if on_record:
                on_record(record)
        return 0

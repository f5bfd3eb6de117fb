"""Incremental reader for an agent's line-delimited output stream.

The reader is transport-agnostic: whatever delivers the bytes (a pipe, an
API response) calls ``feed`` with text chunks, then ``close`` and ``finalize`` once at
the end. Chunks may split lines anywhere; a trailing fragment is held until
the next newline or until ``close``.
"""

import json
import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeAlias

from foreman.constants import CHARS_PER_TOKEN, DEFAULT_TOKEN_LIMIT, DEFAULT_TOKEN_WARNING_RATIO

MAX_TOKENS_SENTINEL = "max_tokens"


@dataclass(frozen=True)
class TruncationRule:
    pattern: re.Pattern[str]
    message: str

    @classmethod
    def of(cls, pattern: str, message: str) -> "TruncationRule":
        return cls(re.compile(pattern, re.IGNORECASE), message)


@dataclass(frozen=True)
class TruncationRuleSet:
    version: str
    rules: tuple[TruncationRule, ...]

    def match(self, text: str) -> str | None:
        for rule in self.rules:
            if rule.pattern.search(text):
                return rule.message
        return None


DEFAULT_TRUNCATION_RULES = TruncationRuleSet(
    version="1",
    rules=(
        TruncationRule.of(
            r"response (?:was )?truncated",
            "Agent output was truncated due to response length limits. "
            "Please reduce the request size or ask for a shorter answer.",
        ),
        TruncationRule.of(
            r"exceeded (?:the )?maximum (?:tokens|context length)",
            "Agent hit the maximum context size and stopped early. "
            "Try simplifying the request or splitting it into smaller steps.",
        ),
        TruncationRule.of(
            r"stop_reason[\"']?:\s*[\"']?max_tokens",
            "Agent stopped because it reached the maximum token budget. Please request a shorter response.",
        ),
        TruncationRule.of(
            r"max_tokens",
            "Agent reached its token budget and stopped early. Try asking for a shorter reply.",
        ),
    ),
)


@dataclass(frozen=True)
class StreamRecord:
    """One decoded line. ``data`` is None for lines that were not structured records."""

    line: str
    data: dict | None = None

    @property
    def type(self) -> str | None:
        if self.data is None:
            return None
        value = self.data.get("type")
        return value if isinstance(value, str) else None

    def text_field(self, name: str) -> str | None:
        if self.data is None:
            return None
        value = self.data.get(name)
        return value if isinstance(value, str) and value else None


@dataclass
class StreamState:
    buffer: str = ""
    chars: int = 0
    words: int = 0
    warned: bool = False
    truncation: str | None = None
    text: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StreamResult:
    text: str
    truncation: str | None
    approx_tokens: int

    @property
    def truncated(self) -> bool:
        return self.truncation is not None


LimitWarning: TypeAlias = Callable[[int, int], None]


def decode_line(line: str) -> StreamRecord:
    try:
        data = json.loads(line)
    except ValueError:
        return StreamRecord(line=line)
    if not isinstance(data, dict):
        return StreamRecord(line=line)
    return StreamRecord(line=line, data=data)


class StreamReader:
    def __init__(
        self,
        *,
        token_limit: int = DEFAULT_TOKEN_LIMIT,
        warning_ratio: float = DEFAULT_TOKEN_WARNING_RATIO,
        chars_per_token: int = CHARS_PER_TOKEN,
        rules: TruncationRuleSet = DEFAULT_TRUNCATION_RULES,
        on_limit_warning: LimitWarning | None = None,
    ):
        self.token_limit = token_limit
        self.warning_ratio = warning_ratio
        self.chars_per_token = chars_per_token
        self.rules = rules
        self.on_limit_warning = on_limit_warning
        self.state = StreamState()
        self._finalized = False

    @property
    def truncation(self) -> str | None:
        return self.state.truncation

    @property
    def approx_tokens(self) -> int:
        return max(math.ceil(self.state.chars / self.chars_per_token), self.state.words)

    @property
    def text(self) -> str:
        return "".join(self.state.text)

    def feed(self, chunk: str) -> list[StreamRecord]:
        """Consume a chunk and return the records for every line it completed."""
        if self._finalized:
            raise RuntimeError("Cannot feed a finalized stream")
        self.state.buffer += chunk
        *lines, self.state.buffer = self.state.buffer.split("\n")
        return [record for line in lines if (record := self._handle_line(line, final=False))]

    def feed_stderr(self, chunk: str) -> None:
        """Diagnostics channel: only checked for truncation, never part of the output."""
        self._detect_truncation(chunk)

    def close(self) -> list[StreamRecord]:
        """End the stream, returning the record decoded from an unterminated last line."""
        if self._finalized:
            return []
        self._finalized = True
        tail, self.state.buffer = self.state.buffer, ""
        record = self._handle_line(tail, final=True)
        return [record] if record else []

    def finalize(self) -> StreamResult:
        self.close()
        return StreamResult(text=self.text, truncation=self.truncation, approx_tokens=self.approx_tokens)

    def _handle_line(self, line: str, *, final: bool) -> StreamRecord | None:
        if not line.strip():
            return None
        self._detect_truncation(line)

        record = decode_line(line)
        if record.data is None:
            self._append(line if final else line + "\n")
            return record

        content = record.text_field("content")
        if record.type == "assistant" and content:
            self._append(content)
        elif record.type == "result" and (result := record.text_field("result")):
            self._append(result)
        elif record.data.get("stop_reason") == MAX_TOKENS_SENTINEL:
            self._detect_truncation(f"stop_reason:{MAX_TOKENS_SENTINEL}")
        elif record.type == "text" and content:
            self._track(content)
        return record

    def _append(self, text: str) -> None:
        self.state.text.append(text)
        self._track(text)

    def _track(self, text: str) -> None:
        if not text:
            return
        self.state.chars += len(text)
        self.state.words += len(text.split())

        if self.state.warned:
            return
        approx = self.approx_tokens
        if approx >= self.token_limit * self.warning_ratio:
            self.state.warned = True
            if self.on_limit_warning:
                self.on_limit_warning(approx, self.token_limit)

    def _detect_truncation(self, text: str) -> None:
        if self.state.truncation or not text:
            return
        self.state.truncation = self.rules.match(text)

from foreman.agents.base import Agent, AgentKind
from foreman.agents.stream import (
    DEFAULT_TRUNCATION_RULES,
    StreamReader,
    StreamRecord,
    StreamResult,
    TruncationRule,
    TruncationRuleSet,
)

__all__ = [
    "DEFAULT_TRUNCATION_RULES",
    "Agent",
    "AgentKind",
    "StreamReader",
    "StreamRecord",
    "StreamResult",
    "TruncationRule",
    "TruncationRuleSet",
]

from collections.abc import Callable
from typing import TypeAlias

from foreman.agents.base import Agent
from foreman.agents.stream import DEFAULT_TRUNCATION_RULES, TruncationRuleSet
from foreman.approval.gate import ApprovalGate
from foreman.channel import UpdateFeed
from foreman.constants import DEFAULT_TOKEN_LIMIT, DEFAULT_TOKEN_WARNING_RATIO
from foreman.logging import get_logger
from foreman.session.orchestrator import SessionOrchestrator

AgentFactory: TypeAlias = Callable[[], Agent]

_logger = get_logger(__name__)


class SessionRegistry:
    """One orchestrator per user, all sharing a single approval gate.

    Each session publishes on its own feed. Every session feed is also
    forwarded to ``feed`` so server-wide consumers (SSE, notifiers) see
    all updates without tracking sessions themselves.
    """

    def __init__(
        self,
        gate: ApprovalGate,
        agent_factory: AgentFactory,
        *,
        token_limit: int = DEFAULT_TOKEN_LIMIT,
        token_warning_ratio: float = DEFAULT_TOKEN_WARNING_RATIO,
        truncation_rules: TruncationRuleSet = DEFAULT_TRUNCATION_RULES,
    ):
        self.gate = gate
        self.agent_factory = agent_factory
        self.token_limit = token_limit
        self.token_warning_ratio = token_warning_ratio
        self.truncation_rules = truncation_rules
        self.feed = UpdateFeed()
        self._sessions: dict[str, SessionOrchestrator] = {}

    def get(self, user_id: str) -> SessionOrchestrator | None:
        return self._sessions.get(user_id)

    def get_or_create(self, user_id: str) -> SessionOrchestrator:
        session = self._sessions.get(user_id)
        if session is None:
            feed = UpdateFeed()
            feed.subscribe(self.feed.publish)
            session = SessionOrchestrator(
                agent=self.agent_factory(),
                gate=self.gate,
                feed=feed,
                token_limit=self.token_limit,
                token_warning_ratio=self.token_warning_ratio,
                truncation_rules=self.truncation_rules,
            )
            self._sessions[user_id] = session
            _logger.debug("Created session for %s", user_id)
        return session

    @property
    def sessions(self) -> dict[str, SessionOrchestrator]:
        return dict(self._sessions)

    async def end(self, user_id: str) -> bool:
        """Tear down a user's session. Its pending approvals are rejected."""
        session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        await session.cancel()
        self.gate.cancel_all_for_user(user_id)
        session.feed.unsubscribe(self.feed.publish)
        return True

    async def close(self) -> None:
        for session in list(self._sessions.values()):
            await session.cancel()
        cleared = self.gate.clear_all()
        if cleared:
            _logger.info("Cleared %d pending approvals on shutdown", cleared)
        self._sessions.clear()

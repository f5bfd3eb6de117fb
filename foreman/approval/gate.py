import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from foreman.approval.detector import DetectedAction
from foreman.channel import UpdateFeed
from foreman.constants import APPROVAL_TIMEOUT, DEFAULT_REPO_LABEL
from foreman.events import ApprovalDetails, Update, UpdateType
from foreman.logging import get_logger
from foreman.utils import new_id, utc_now

_logger = get_logger(__name__)


class ApprovalState(StrEnum):
    PENDING = "pending"
    SETTLED = "settled"


@dataclass
class PendingApproval:
    id: str
    user_id: str
    action: str
    repo: str
    details: str
    command: str
    future: asyncio.Future[bool]
    feed: UpdateFeed
    agent: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    timeout_handle: asyncio.TimerHandle | None = None
    state: ApprovalState = ApprovalState.PENDING

    def settle(self, approved: bool) -> bool:
        if self.state is ApprovalState.SETTLED:
            return False
        self.state = ApprovalState.SETTLED
        if self.timeout_handle:
            self.timeout_handle.cancel()
            self.timeout_handle = None
        if not self.future.done():
            self.future.set_result(approved)
        return True


def format_timeout(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds:g} seconds"


class ApprovalGate:
    """Human-in-the-loop confirmation for sensitive actions.

    Every request is settled exactly once, by whichever comes first of an
    explicit response, the timeout, or a bulk cancel. Settling removes the
    record from the pending set, so later triggers find nothing to act on.
    """

    def __init__(self, timeout: float = APPROVAL_TIMEOUT, feed: UpdateFeed | None = None):
        self.timeout = timeout
        self.feed = feed or UpdateFeed()
        self._pending: dict[str, PendingApproval] = {}

    def open(
        self,
        user_id: str,
        detection: DetectedAction,
        repo: str | None = None,
        *,
        agent: str | None = None,
        feed: UpdateFeed | None = None,
    ) -> PendingApproval:
        loop = asyncio.get_running_loop()
        approval_id = new_id()
        pending = PendingApproval(
            id=approval_id,
            user_id=user_id,
            action=detection.action,
            repo=repo or DEFAULT_REPO_LABEL,
            details=detection.details,
            command=detection.command,
            future=loop.create_future(),
            feed=feed or self.feed,
            agent=agent,
        )
        self._pending[approval_id] = pending
        pending.timeout_handle = loop.call_later(self.timeout, self._expire, approval_id)

        pending.feed.publish(
            Update(
                type=UpdateType.APPROVAL_REQUIRED,
                user_id=user_id,
                message=f"Approval required for: {detection.action}",
                agent=agent,
                approval_id=approval_id,
                approval_details=ApprovalDetails(
                    action=detection.action,
                    repo=pending.repo,
                    details=detection.details,
                    severity=detection.severity.value,
                ),
            )
        )
        return pending

    async def request_approval(
        self,
        user_id: str,
        detection: DetectedAction,
        repo: str | None = None,
        *,
        agent: str | None = None,
        feed: UpdateFeed | None = None,
    ) -> bool:
        pending = self.open(user_id, detection, repo, agent=agent, feed=feed)
        try:
            return await pending.future
        except asyncio.CancelledError:
            self._settle(pending.id, False)
            raise

    def handle_response(self, approval_id: str, approved: bool, user_id: str) -> bool:
        pending = self._pending.get(approval_id)
        if pending is None:
            _logger.warning("No pending approval found for %s", approval_id)
            return False

        if pending.user_id != user_id:
            _logger.warning("User mismatch for approval %s: expected %s, got %s", approval_id, pending.user_id, user_id)
            return False

        self._settle(approval_id, approved)
        _logger.info(
            "Approval %s %s by %s (action=%s, command=%s)",
            approval_id,
            "APPROVED" if approved else "REJECTED",
            user_id,
            pending.action,
            pending.command,
        )
        return True

    def pending(self, user_id: str | None = None) -> list[PendingApproval]:
        approvals = list(self._pending.values())
        if user_id is not None:
            return [a for a in approvals if a.user_id == user_id]
        return approvals

    def cancel_all_for_user(self, user_id: str) -> int:
        ids = [a.id for a in self._pending.values() if a.user_id == user_id]
        for approval_id in ids:
            self._settle(approval_id, False)
        return len(ids)

    def clear_all(self) -> int:
        ids = list(self._pending)
        for approval_id in ids:
            self._settle(approval_id, False)
        return len(ids)

    def _settle(self, approval_id: str, approved: bool) -> PendingApproval | None:
        pending = self._pending.pop(approval_id, None)
        if pending is None or not pending.settle(approved):
            return None
        return pending

    def _expire(self, approval_id: str) -> None:
        pending = self._settle(approval_id, False)
        if pending is None:
            return

        _logger.info("Approval %s timed out (action=%s)", approval_id, pending.action)
        pending.feed.publish(
            Update(
                type=UpdateType.ERROR,
                user_id=pending.user_id,
                message=(
                    f"Approval request timed out after {format_timeout(self.timeout)}. Action was not executed."
                ),
                agent=pending.agent,
            )
        )

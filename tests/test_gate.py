import asyncio

import pytest

from foreman.approval.detector import ActionDetector
from foreman.approval.gate import ApprovalGate, ApprovalState, format_timeout
from foreman.channel import UpdateFeed
from foreman.events import UpdateType
from tests.conftest import Recorder

PUSH = ActionDetector().detect("git push origin main --force")
PUBLISH = ActionDetector().detect("npm publish")


class TestRequestApproval:
    @pytest.mark.asyncio
    async def test_publishes_approval_required(self, gate: ApprovalGate, recorder: Recorder):
        pending = gate.open("alice", PUSH, "acme/api", agent="claude")

        [update] = recorder.updates
        assert update.type is UpdateType.APPROVAL_REQUIRED
        assert update.message == "Approval required for: Force push (destructive)"
        assert update.approval_id == pending.id
        assert update.approval_details.repo == "acme/api"
        assert update.approval_details.details == "Branch: main, Force flag enabled"
        assert update.approval_details.severity == "high"
        assert update.agent == "claude"

    @pytest.mark.asyncio
    async def test_default_repo_label(self, gate: ApprovalGate):
        pending = gate.open("alice", PUSH)

        assert pending.repo == "current directory"

    @pytest.mark.asyncio
    async def test_approve_then_second_response_not_found(self, gate: ApprovalGate):
        task = asyncio.create_task(gate.request_approval("alice", PUSH))
        await asyncio.sleep(0)
        [pending] = gate.pending("alice")

        assert gate.handle_response(pending.id, True, "alice") is True
        assert await task is True
        assert gate.handle_response(pending.id, False, "alice") is False
        assert pending.state is ApprovalState.SETTLED

    @pytest.mark.asyncio
    async def test_reject(self, gate: ApprovalGate):
        task = asyncio.create_task(gate.request_approval("alice", PUSH))
        await asyncio.sleep(0)
        [pending] = gate.pending()

        gate.handle_response(pending.id, False, "alice")

        assert await task is False
        assert gate.pending() == []

    @pytest.mark.asyncio
    async def test_user_mismatch_fails_closed(self, gate: ApprovalGate):
        task = asyncio.create_task(gate.request_approval("alice", PUSH))
        await asyncio.sleep(0)
        [pending] = gate.pending()

        assert gate.handle_response(pending.id, True, "mallory") is False
        assert not task.done()
        assert gate.pending("alice") == [pending]

        gate.handle_response(pending.id, True, "alice")
        assert await task is True

    @pytest.mark.asyncio
    async def test_unknown_id(self, gate: ApprovalGate):
        assert gate.handle_response("nope", True, "alice") is False

    @pytest.mark.asyncio
    async def test_synchronous_responder_sees_pending_record(self, feed: UpdateFeed):
        gate = ApprovalGate(timeout=5, feed=feed)
        results: list[bool] = []

        def respond(update):
            if update.type is UpdateType.APPROVAL_REQUIRED:
                results.append(gate.handle_response(update.approval_id, True, update.user_id))

        feed.subscribe(respond)

        assert await gate.request_approval("alice", PUSH) is True
        assert results == [True]

    @pytest.mark.asyncio
    async def test_per_request_feed(self, gate: ApprovalGate, recorder: Recorder):
        session_feed = UpdateFeed()
        session = Recorder(session_feed)

        gate.open("alice", PUSH, feed=session_feed)

        assert recorder.updates == []
        assert len(session.of_type(UpdateType.APPROVAL_REQUIRED)) == 1


class TestTimeout:
    @pytest.mark.asyncio
    async def test_timeout_rejects_and_notifies_once(self, feed: UpdateFeed, recorder: Recorder):
        gate = ApprovalGate(timeout=0.05, feed=feed)

        approved = await gate.request_approval("alice", PUSH, agent="claude")

        assert approved is False
        assert gate.pending() == []
        errors = recorder.of_type(UpdateType.ERROR)
        assert [e.message for e in errors] == [
            "Approval request timed out after 0.05 seconds. Action was not executed."
        ]
        await asyncio.sleep(0.1)
        assert len(recorder.of_type(UpdateType.ERROR)) == 1

    @pytest.mark.asyncio
    async def test_response_cancels_timer(self, feed: UpdateFeed, recorder: Recorder):
        gate = ApprovalGate(timeout=0.05, feed=feed)
        pending = gate.open("alice", PUSH)

        gate.handle_response(pending.id, True, "alice")
        await asyncio.sleep(0.1)

        assert await pending.future is True
        assert recorder.of_type(UpdateType.ERROR) == []

    def test_format_timeout(self):
        assert format_timeout(1800) == "30 minutes"
        assert format_timeout(60) == "1 minute"
        assert format_timeout(0.05) == "0.05 seconds"


class TestBulk:
    @pytest.mark.asyncio
    async def test_cancel_all_for_user(self, gate: ApprovalGate):
        alice_push = asyncio.create_task(gate.request_approval("alice", PUSH))
        alice_publish = asyncio.create_task(gate.request_approval("alice", PUBLISH))
        bob = asyncio.create_task(gate.request_approval("bob", PUSH))
        await asyncio.sleep(0)

        assert gate.cancel_all_for_user("alice") == 2

        assert await alice_push is False
        assert await alice_publish is False
        assert not bob.done()
        assert [p.user_id for p in gate.pending()] == ["bob"]

    @pytest.mark.asyncio
    async def test_clear_all(self, gate: ApprovalGate, recorder: Recorder):
        tasks = [asyncio.create_task(gate.request_approval(u, PUSH)) for u in ("alice", "bob")]
        await asyncio.sleep(0)

        assert gate.clear_all() == 2
        assert await asyncio.gather(*tasks) == [False, False]
        assert gate.pending() == []
        assert recorder.of_type(UpdateType.ERROR) == []

    @pytest.mark.asyncio
    async def test_cancelled_waiter_settles_record(self, gate: ApprovalGate):
        task = asyncio.create_task(gate.request_approval("alice", PUSH))
        await asyncio.sleep(0)
        [pending] = gate.pending()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert gate.pending() == []
        assert gate.handle_response(pending.id, True, "alice") is False

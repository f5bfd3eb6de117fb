import asyncio
import json
import re
from dataclasses import dataclass

from foreman.agents.base import Agent
from foreman.agents.stream import DEFAULT_TRUNCATION_RULES, StreamReader, StreamRecord, TruncationRuleSet
from foreman.approval.detector import ActionDetector
from foreman.approval.gate import ApprovalGate
from foreman.channel import UpdateFeed
from foreman.constants import (
    DEFAULT_TOKEN_LIMIT,
    DEFAULT_TOKEN_WARNING_RATIO,
    SUCCESS_INDICATORS,
    SUMMARY_FALLBACK,
    SUMMARY_MAX_LINES,
    TASK_DESCRIPTION_LIMIT,
    TEXT_PREVIEW_CHARS,
    TEXT_PREVIEW_MIN,
)
from foreman.context.resolver import ContextAction, ContextResolver
from foreman.errors import AgentExitError, AgentStartError, TaskInProgressError
from foreman.events import Update, UpdateType, error, status
from foreman.logging import get_logger, session_context
from foreman.session.state import SessionState, Task
from foreman.utils import truncate

_logger = get_logger(__name__)

SENTENCE_END_RE = re.compile(r"[.!?]")


def summarize_response(response: str) -> str:
    lines = [line for line in response.split("\n") if line.strip()]

    relevant = [line for line in lines if any(ind in line.lower() for ind in SUCCESS_INDICATORS)]
    if relevant:
        return "\n".join(relevant[:SUMMARY_MAX_LINES])

    if lines:
        return "\n".join(lines[-SUMMARY_MAX_LINES:])

    return SUMMARY_FALLBACK


@dataclass
class ActiveRun:
    user_id: str
    task: Task | None = None
    cancelled: bool = False


class SessionOrchestrator:
    """Drives one instruction at a time from prompt to approved completion.

    Everything the session does is reported on ``feed``. Failures never
    escape ``process_instruction``: each ends as a single ERROR update with
    the task marked failed.
    """

    def __init__(
        self,
        *,
        agent: Agent,
        gate: ApprovalGate,
        state: SessionState | None = None,
        resolver: ContextResolver | None = None,
        detector: ActionDetector | None = None,
        feed: UpdateFeed | None = None,
        token_limit: int = DEFAULT_TOKEN_LIMIT,
        token_warning_ratio: float = DEFAULT_TOKEN_WARNING_RATIO,
        truncation_rules: TruncationRuleSet = DEFAULT_TRUNCATION_RULES,
    ):
        self.agent = agent
        self.gate = gate
        self.state = state or SessionState()
        self.resolver = resolver or ContextResolver()
        self.detector = detector or ActionDetector()
        self.feed = feed or UpdateFeed()
        self.token_limit = token_limit
        self.token_warning_ratio = token_warning_ratio
        self.truncation_rules = truncation_rules
        self._history: list[dict] = []
        self._active: ActiveRun | None = None

    @property
    def agent_name(self) -> str:
        return self.agent.kind.value

    @property
    def is_processing(self) -> bool:
        return self._active is not None

    @property
    def history(self) -> list[dict]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history = []

    def status(self) -> dict:
        task = self.state.current_task
        return {
            "currentTask": (
                {
                    "description": task.description,
                    "status": task.status.value,
                    "startedAt": task.started_at.isoformat(),
                }
                if task
                else None
            ),
            "subAgents": [a.to_dict() for a in self.state.sub_agents],
        }

    def describe(self, instruction: str) -> str:
        task = self.resolver.extract_task(instruction)
        first_sentence = SENTENCE_END_RE.split(task, maxsplit=1)[0]
        if len(first_sentence) <= TASK_DESCRIPTION_LIMIT:
            return first_sentence.strip()
        return truncate(task, TASK_DESCRIPTION_LIMIT)

    async def process_instruction(self, instruction: str, user_id: str) -> Task | None:
        if self._active is not None or self.state.is_running:
            self._emit(error(user_id, str(TaskInProgressError()), self.agent_name))
            return None

        run = ActiveRun(user_id=user_id)
        self._active = run
        try:
            with session_context(user_id, self.agent_name):
                await self._drive(run, instruction)
        except (AgentStartError, AgentExitError) as e:
            self._fail(run, str(e))
        except asyncio.CancelledError:
            if run.task:
                self.state.fail_task(run.task)
            raise
        except Exception as e:
            _logger.exception("Error processing instruction for %s", user_id)
            self._fail(run, f"Failed to process instruction: {e}")
        finally:
            if self._active is run:
                self._active = None
        return run.task

    async def cancel(self) -> bool:
        """Abort the running instruction. The lock is released before the agent is signalled."""
        run = self._active
        if run is None:
            return False

        run.cancelled = True
        self._active = None
        if run.task:
            self.state.fail_task(run.task)
        self.gate.cancel_all_for_user(run.user_id)
        description = run.task.description if run.task else "no task started"
        self._emit(status(run.user_id, f"Task cancelled: {description}", self.agent_name))
        await self.agent.cancel()
        return True

    async def _drive(self, run: ActiveRun, instruction: str) -> None:
        user_id = run.user_id

        context = self.resolver.parse(instruction)
        if context:
            self.resolver.apply(context, self.state)
            if context.action in (ContextAction.SWITCH, ContextAction.CREATE):
                self._emit(status(user_id, self._context_message(context.repo, context.branch), self.agent_name))

        description = self.describe(instruction)
        run.task = self.state.start_task(description, user_id, self.agent_name)
        self._emit(status(user_id, f"Starting with {self.agent.label}: {description}", self.agent_name))

        prompt = self.resolver.build_context_prompt(self.state) + instruction
        prior = list(self._history)
        self._history.append({"role": "user", "content": prompt})

        reader = StreamReader(
            token_limit=self.token_limit,
            warning_ratio=self.token_warning_ratio,
            rules=self.truncation_rules,
            on_limit_warning=lambda approx, limit: self._emit(
                status(
                    user_id,
                    f"Approaching output limit (~{approx} of {limit} tokens). "
                    "Output may be truncated.",
                    self.agent_name,
                )
            ),
        )
        exit_code = await self.agent.run(prompt, prior, reader, lambda record: self._on_record(record, user_id))
        tail = reader.close()
        result = reader.finalize()
        if run.cancelled:
            return
        for record in tail:
            self._on_record(record, user_id)

        if result.truncation:
            self._fail(run, result.truncation)
            return

        if exit_code != 0:
            raise AgentExitError(self.agent.label, exit_code)

        for detection in self.detector.detect_in_response(result.text):
            approved = await self.gate.request_approval(
                user_id,
                detection,
                self.state.full_repo_name,
                agent=self.agent_name,
                feed=self.feed,
            )
            if run.cancelled:
                return
            verdict = "approved" if approved else "rejected"
            self._emit(status(user_id, f"Action {verdict}: {detection.action}", self.agent_name))

        if result.text:
            self._history.append({"role": "assistant", "content": result.text})

        self.state.complete_task(run.task)
        self._emit(
            Update(
                type=UpdateType.TASK_COMPLETE,
                user_id=user_id,
                message=summarize_response(result.text),
                agent=self.agent_name,
            )
        )

    def _on_record(self, record: StreamRecord, user_id: str) -> None:
        if record.type == "tool_use" and (tool := record.text_field("tool")):
            tool_input = json.dumps(record.data.get("tool_input") or {})
            if self.detector.detect(tool_input):
                self._emit(status(user_id, f"Executing: {tool}", self.agent_name))
        elif record.type == "text" and (content := record.text_field("content")):
            preview = content[:TEXT_PREVIEW_CHARS]
            if len(preview) > TEXT_PREVIEW_MIN:
                self._emit(status(user_id, f"Working: {preview}...", self.agent_name))

    def _context_message(self, repo: str | None, branch: str | None) -> str:
        repo_name = self.state.full_repo_name or repo
        if not repo_name:
            return f"Switched to branch: {branch}"
        suffix = f" (branch: {branch})" if branch else ""
        return f"Working in repository: {repo_name}{suffix}"

    def _fail(self, run: ActiveRun, message: str) -> None:
        if run.cancelled:
            return
        if run.task:
            self.state.fail_task(run.task)
        self._emit(error(run.user_id, message, self.agent_name))

    def _emit(self, update: Update) -> None:
        self.feed.publish(update)

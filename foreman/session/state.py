from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum

from foreman.errors import TaskInProgressError
from foreman.utils import new_id, utc_now


class TaskStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.RUNNING


class SubAgentStatus(StrEnum):
    RUNNING = "running"
    WAITING_INPUT = "waiting_input"
    WAITING_APPROVAL = "waiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Task:
    id: str
    description: str
    user_id: str
    agent: str
    status: TaskStatus = TaskStatus.RUNNING
    started_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "userId": self.user_id,
            "agent": self.agent,
        }


@dataclass
class SubAgent:
    id: str
    task: str
    repo: str
    status: SubAgentStatus = SubAgentStatus.RUNNING
    started_at: datetime = field(default_factory=utc_now)
    last_update: str = "Starting..."

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task": self.task,
            "repo": self.repo,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "lastUpdate": self.last_update,
        }


class SessionState:
    """Task lifecycle and repository context for one session.

    At most one task runs at a time. Finished tasks are never mutated again;
    the next instruction starts a fresh task that replaces them as current.
    """

    def __init__(self) -> None:
        self.org: str | None = None
        self.repo: str | None = None
        self.branch: str | None = None
        self.current_task: Task | None = None
        self._sub_agents: list[SubAgent] = []

    # --- Repository context ---

    def set_repo_context(self, org: str | None, repo: str | None, branch: str | None = None) -> None:
        self.org = org
        self.repo = repo
        if branch:
            self.branch = branch

    def set_branch(self, branch: str) -> None:
        self.branch = branch

    @property
    def full_repo_name(self) -> str | None:
        if self.org and self.repo:
            return f"{self.org}/{self.repo}"
        return self.repo

    # --- Tasks ---

    @property
    def is_running(self) -> bool:
        return self.current_task is not None and self.current_task.status is TaskStatus.RUNNING

    def start_task(self, description: str, user_id: str, agent: str) -> Task:
        if self.is_running:
            raise TaskInProgressError(self.current_task.description)
        task = Task(id=new_id(), description=description, user_id=user_id, agent=agent)
        self.current_task = task
        return task

    def complete_task(self, task: Task | None = None) -> bool:
        return self._finish(task or self.current_task, TaskStatus.COMPLETED)

    def fail_task(self, task: Task | None = None) -> bool:
        return self._finish(task or self.current_task, TaskStatus.FAILED)

    def _finish(self, task: Task | None, status: TaskStatus) -> bool:
        if task is None or task.status.is_terminal:
            return False
        task.status = status
        return True

    # --- Sub-agents ---

    def add_sub_agent(self, task: str, repo: str) -> SubAgent:
        agent = SubAgent(id=new_id(), task=task, repo=repo)
        self._sub_agents.append(agent)
        return agent

    def update_sub_agent(
        self,
        agent_id: str,
        *,
        status: SubAgentStatus | None = None,
        last_update: str | None = None,
    ) -> SubAgent | None:
        agent = self.get_sub_agent(agent_id)
        if agent is None:
            return None
        if status is not None:
            agent.status = status
        if last_update is not None:
            agent.last_update = last_update
        return agent

    def remove_sub_agent(self, agent_id: str) -> None:
        self._sub_agents = [a for a in self._sub_agents if a.id != agent_id]

    def get_sub_agent(self, agent_id: str) -> SubAgent | None:
        return next((a for a in self._sub_agents if a.id == agent_id), None)

    @property
    def sub_agents(self) -> list[SubAgent]:
        return [replace(a) for a in self._sub_agents]

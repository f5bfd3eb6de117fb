from foreman.session.orchestrator import SessionOrchestrator, summarize_response
from foreman.session.registry import SessionRegistry
from foreman.session.state import SessionState, SubAgent, SubAgentStatus, Task, TaskStatus

__all__ = [
    "SessionOrchestrator",
    "SessionRegistry",
    "SessionState",
    "SubAgent",
    "SubAgentStatus",
    "Task",
    "TaskStatus",
    "summarize_response",
]

from abc import ABC, abstractmethod
from typing import ClassVar

from foreman.events import Update, UpdateType

SUBJECTS = {
    UpdateType.STATUS_UPDATE: "Status",
    UpdateType.APPROVAL_REQUIRED: "Approval required",
    UpdateType.TASK_COMPLETE: "Task complete",
    UpdateType.ERROR: "Error",
}


def subject_for(update: Update) -> str:
    return f"[foreman] {SUBJECTS[update.type]}"


def body_for(update: Update) -> str:
    lines = [update.message]
    if update.approval_details:
        lines.append(f"Repository: {update.approval_details.repo}")
        lines.append(f"Details: {update.approval_details.details}")
        lines.append(f"Severity: {update.approval_details.severity}")
    if update.approval_id:
        lines.append(f"Approval ID: {update.approval_id}")
    return "\n".join(lines)


class Notifier(ABC):
    channel: ClassVar[str]

    @abstractmethod
    async def send(self, update: Update) -> None: ...

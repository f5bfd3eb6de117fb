import json
from dataclasses import asdict, dataclass
from enum import StrEnum


class UpdateType(StrEnum):
    STATUS_UPDATE = "STATUS_UPDATE"
    APPROVAL_REQUIRED = "APPROVAL_REQUIRED"
    TASK_COMPLETE = "TASK_COMPLETE"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ApprovalDetails:
    action: str
    repo: str
    details: str
    severity: str = "normal"


@dataclass(frozen=True)
class Update:
    type: UpdateType
    user_id: str
    message: str
    agent: str | None = None
    approval_id: str | None = None
    approval_details: ApprovalDetails | None = None

    def to_dict(self) -> dict:
        data = {
            "type": self.type.value,
            "userId": self.user_id,
            "message": self.message,
        }
        if self.agent:
            data["agent"] = self.agent
        if self.approval_id:
            data["approvalId"] = self.approval_id
        if self.approval_details:
            data["approvalDetails"] = asdict(self.approval_details)
        return data

    def to_sse(self) -> dict:
        return {"event": self.type.value, "data": json.dumps(self.to_dict())}

    def to_sse_string(self) -> str:
        sse = self.to_sse()
        return f"event: {sse['event']}\ndata: {sse['data']}\n\n"


def status(user_id: str, message: str, agent: str | None = None) -> Update:
    return Update(type=UpdateType.STATUS_UPDATE, user_id=user_id, message=message, agent=agent)


def error(user_id: str, message: str, agent: str | None = None) -> Update:
    return Update(type=UpdateType.ERROR, user_id=user_id, message=message, agent=agent)

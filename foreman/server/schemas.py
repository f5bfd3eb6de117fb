from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


class InstructionRequest(BaseModel):
    user_id: str = Field(validation_alias=AliasChoices("user_id", "userId"))
    instruction: str = Field(min_length=1)
    timestamp: datetime | None = None


class InstructionAccepted(BaseModel):
    status: str = "accepted"
    timestamp: datetime


class ApprovalResponseRequest(BaseModel):
    approval_id: str = Field(validation_alias=AliasChoices("approval_id", "approvalId"))
    approved: bool
    user_id: str = Field(validation_alias=AliasChoices("user_id", "userId"))


class CancelRequest(BaseModel):
    user_id: str = Field(validation_alias=AliasChoices("user_id", "userId"))


class TaskStatusResponse(BaseModel):
    description: str
    status: str
    started_at: datetime = Field(serialization_alias="startedAt")


class StatusResponse(BaseModel):
    current_task: TaskStatusResponse | None = Field(default=None, serialization_alias="currentTask")
    sub_agents: list[dict] = Field(default_factory=list, serialization_alias="subAgents")
    pending_approvals: int = Field(default=0, serialization_alias="pendingApprovals")

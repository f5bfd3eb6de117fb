import secrets
from collections.abc import AsyncGenerator
from contextlib import aclosing, asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from foreman import __version__
from foreman.channel import UpdateFeed
from foreman.logging import configure_logging, get_logger
from foreman.server.runtime import get_runtime, get_runtime_async, reset_runtime
from foreman.server.schemas import (
    ApprovalResponseRequest,
    CancelRequest,
    InstructionAccepted,
    InstructionRequest,
    StatusResponse,
    TaskStatusResponse,
)
from foreman.utils import utc_now

_logger = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    runtime = await get_runtime_async()
    configure_logging(runtime.config.log_level, json_output=runtime.config.log_json)
    yield
    await reset_runtime()


app = FastAPI(
    title="foreman",
    description="Instruction execution and approval workflow for coding agents",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def require_auth(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> None:
    secret = get_runtime().config.secret
    if not secret:
        return
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    if not secrets.compare_digest(credentials.credentials, secret):
        raise HTTPException(status_code=403, detail="Invalid token")


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": utc_now().isoformat()}


@app.post("/instruction", dependencies=[Depends(require_auth)], response_model=InstructionAccepted)
async def submit_instruction(request: InstructionRequest) -> InstructionAccepted:
    runtime = get_runtime()
    _logger.info("Instruction from %s: %s", request.user_id, request.instruction)

    session = runtime.sessions.get_or_create(request.user_id)
    runtime.spawn(session.process_instruction(request.instruction, request.user_id))
    return InstructionAccepted(timestamp=utc_now())


@app.post("/approval-response", dependencies=[Depends(require_auth)])
async def approval_response(request: ApprovalResponseRequest):
    runtime = get_runtime()
    if not runtime.gate.handle_response(request.approval_id, request.approved, request.user_id):
        raise HTTPException(status_code=404, detail="Approval request not found or already processed")
    return {"status": "processed"}


@app.get("/status", dependencies=[Depends(require_auth)], response_model=StatusResponse)
async def get_status(user_id: str) -> StatusResponse:
    runtime = get_runtime()
    pending = len(runtime.gate.pending(user_id))
    session = runtime.sessions.get(user_id)
    if session is None:
        return StatusResponse(pending_approvals=pending)

    task = session.state.current_task
    return StatusResponse(
        current_task=(
            TaskStatusResponse(description=task.description, status=task.status.value, started_at=task.started_at)
            if task
            else None
        ),
        sub_agents=[a.to_dict() for a in session.state.sub_agents],
        pending_approvals=pending,
    )


@app.post("/cancel", dependencies=[Depends(require_auth)])
async def cancel(request: CancelRequest):
    session = get_runtime().sessions.get(request.user_id)
    if session is None or not await session.cancel():
        return {"status": "idle"}
    return {"status": "cancelled"}


@app.delete("/sessions/{user_id}", dependencies=[Depends(require_auth)])
async def end_session(user_id: str):
    if not await get_runtime().sessions.end(user_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "ended"}


async def update_events(feed: UpdateFeed, user_id: str | None = None) -> AsyncGenerator[str]:
    async with aclosing(feed.stream()) as stream:
        async for update in stream:
            if user_id is None or update.user_id == user_id:
                yield update.to_sse_string()


@app.get("/updates", dependencies=[Depends(require_auth)])
async def updates(user_id: str | None = None) -> StreamingResponse:
    feed = get_runtime().sessions.feed
    return StreamingResponse(
        update_events(feed, user_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )

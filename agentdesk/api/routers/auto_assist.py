"""AutoAssist API endpoints."""

from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..config import settings
from ..models.assistant import AttachedFile
from ..services.agent_store import AgentStore
from ..services.auto_assist import AutoAssistOutcome, AutoAssistSession, AutoAssistStateMachine
from ..services.completion_service import CompletionService
from ..services.file_service import FileService

router = APIRouter(prefix="/api/auto-assist", tags=["auto-assist"])


class AutoAssistRequest(BaseModel):
    """User input for AutoAssist."""
    message: str
    files: List[AttachedFile] = Field(default_factory=list)
    api_key: Optional[str] = None


class AgentModeUpdate(BaseModel):
    enabled: bool


class AutoAssistRuntime:
    """Process-wide AutoAssist session and agent-mode flag."""

    def __init__(self, agent_mode: bool):
        self.session = AutoAssistSession()
        self.agent_mode = agent_mode


_auto_assist_runtime = AutoAssistRuntime(agent_mode=settings.auto_assist_agent_mode)


def get_auto_assist_runtime() -> AutoAssistRuntime:
    """Dependency injection for the in-memory AutoAssist runtime."""
    return _auto_assist_runtime


def get_state_machine(
    runtime: AutoAssistRuntime = Depends(get_auto_assist_runtime),
) -> AutoAssistStateMachine:
    """Dependency injection for AutoAssistStateMachine."""
    return AutoAssistStateMachine(
        AgentStore(settings.agents_store_path),
        CompletionService(),
        FileService(settings.images_dir, settings.files_dir),
        agent_mode=runtime.agent_mode,
    )


def _outcome_payload(outcome: AutoAssistOutcome) -> dict:
    return {
        "state": outcome.state.value,
        "pending_subtasks": [s.model_dump() for s in outcome.session.pending_subtasks],
        "messages": [m.model_dump() for m in outcome.messages],
        "notices": [asdict(n) for n in outcome.notices],
        "error": outcome.error,
    }


@router.get("/state")
async def get_state(runtime: AutoAssistRuntime = Depends(get_auto_assist_runtime)):
    """Current AutoAssist state and agent-mode flag."""
    return {
        "state": runtime.session.state.value,
        "pending_subtasks": [s.model_dump() for s in runtime.session.pending_subtasks],
        "agent_mode": runtime.agent_mode,
    }


@router.put("/agent-mode")
async def set_agent_mode(
    request: AgentModeUpdate,
    runtime: AutoAssistRuntime = Depends(get_auto_assist_runtime),
):
    """Enable or disable running subtasks without confirmation."""
    runtime.agent_mode = request.enabled
    return {"agent_mode": runtime.agent_mode}


@router.post("/messages")
async def send_message(
    request: AutoAssistRequest,
    runtime: AutoAssistRuntime = Depends(get_auto_assist_runtime),
    machine: AutoAssistStateMachine = Depends(get_state_machine),
):
    """Send a request (or a yes/no answer) to AutoAssist."""
    outcome = await machine.handle_input(
        runtime.session,
        request.message,
        request.files,
        request.api_key or settings.completion_api_key,
    )
    return _outcome_payload(outcome)


@router.put("/messages/{index}")
async def edit_message(
    index: int,
    request: AutoAssistRequest,
    runtime: AutoAssistRuntime = Depends(get_auto_assist_runtime),
    machine: AutoAssistStateMachine = Depends(get_state_machine),
):
    """Edit a previous request and rerun it from scratch."""
    try:
        outcome = await machine.edit_and_rerun(
            runtime.session,
            index,
            request.message,
            request.files,
            request.api_key or settings.completion_api_key,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _outcome_payload(outcome)


@router.post("/reset")
async def reset(
    runtime: AutoAssistRuntime = Depends(get_auto_assist_runtime),
    machine: AutoAssistStateMachine = Depends(get_state_machine),
):
    """Clear AutoAssist history and any pending plan."""
    return _outcome_payload(await machine.reset(runtime.session))

"""Chat API endpoints."""

import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..config import settings
from ..models.assistant import AttachedFile
from ..services.agent_store import AgentStore
from ..services.chat_service import ChatService, ChatTurnResult
from ..services.completion_service import CompletionService
from ..services.errors import AssistantNotFoundError
from ..services.external_api_service import ExternalAPIService
from ..services.file_service import FileService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


class ChatRequest(BaseModel):
    """Request model for sending or editing a message."""
    message: str
    files: List[AttachedFile] = Field(default_factory=list)
    use_knowledge_files: bool = False
    api_key: Optional[str] = None  # Falls back to COMPLETION_API_KEY


def get_chat_service() -> ChatService:
    """Dependency injection for ChatService."""
    return ChatService(
        AgentStore(settings.agents_store_path),
        CompletionService(),
        FileService(settings.images_dir, settings.files_dir),
        external_api=ExternalAPIService(),
    )


def _credential(request: ChatRequest) -> str:
    return request.api_key or settings.completion_api_key


def _turn_payload(result: ChatTurnResult) -> dict:
    return {
        "reply": result.reply,
        "image_path": result.image_path,
        "messages": [m.model_dump() for m in result.assistant.messages] if result.assistant else [],
        "notices": [asdict(n) for n in result.notices],
        "error": result.error,
    }


@router.post("/{assistant_id}/messages")
async def send_message(
    assistant_id: int,
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
):
    """Send a message to an assistant and return its reply."""
    try:
        result = await service.send_message(
            assistant_id,
            request.message,
            files=request.files,
            credential=_credential(request),
            use_knowledge_files=request.use_knowledge_files,
        )
    except AssistantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _turn_payload(result)


@router.put("/{assistant_id}/messages/{index}")
async def edit_message(
    assistant_id: int,
    index: int,
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
):
    """Edit the user message at ``index`` and rerun from there."""
    try:
        result = await service.edit_message(
            assistant_id,
            index,
            request.message,
            files=request.files,
            credential=_credential(request),
            use_knowledge_files=request.use_knowledge_files,
        )
    except AssistantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _turn_payload(result)


@router.delete("/{assistant_id}/messages")
async def reset_chat(
    assistant_id: int,
    service: ChatService = Depends(get_chat_service),
):
    """Clear an assistant's conversation history."""
    try:
        await service.reset_chat(assistant_id)
    except AssistantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"message": "History cleared"}

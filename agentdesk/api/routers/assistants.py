"""
Assistant management API endpoints

CRUD, summary, export and import operations for assistant records
"""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..config import settings
from ..models.assistant import Assistant, AssistantCreate, AssistantUpdate
from ..services.agent_store import AgentStore
from ..services.assistant_service import AssistantService
from ..services.errors import AssistantNotFoundError
from ..services.file_service import FileService

router = APIRouter(prefix="/api/assistants", tags=["assistants"])


class SummaryUpdate(BaseModel):
    """Capability summary used by AutoAssist"""
    summary: str


class KnowledgeFileRequest(BaseModel):
    """Knowledge file chosen by the user"""
    path: str


class ImportRequest(BaseModel):
    """Import request (raw export payload)"""
    raw: str
    mode: Literal["replace", "append"] = "append"


def get_assistant_service() -> AssistantService:
    """Dependency injection: get assistant service instance"""
    return AssistantService(
        AgentStore(settings.agents_store_path),
        FileService(settings.images_dir, settings.files_dir),
        knowledge_dir=settings.files_dir,
    )


# ==================== Export / Import ====================

@router.get("/export")
async def export_assistants(
    ids: Optional[List[int]] = Query(None),
    include_history: bool = True,
    service: AssistantService = Depends(get_assistant_service),
):
    """Export all (or the selected) assistants"""
    return await service.export_assistants(ids=ids, include_history=include_history)


@router.post("/import", response_model=List[Assistant])
async def import_assistants(
    request: ImportRequest,
    service: AssistantService = Depends(get_assistant_service),
):
    """Import assistants in replace or append mode"""
    try:
        return await service.import_assistants(request.raw, request.mode)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ==================== Assistant Management ====================

@router.get("", response_model=List[Assistant])
async def list_assistants(service: AssistantService = Depends(get_assistant_service)):
    """Get all assistants list"""
    return await service.list_assistants()


@router.get("/{assistant_id}", response_model=Assistant)
async def get_assistant(
    assistant_id: int,
    service: AssistantService = Depends(get_assistant_service),
):
    """Get specified assistant details"""
    try:
        return await service.get_assistant(assistant_id)
    except AssistantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("", status_code=201, response_model=Assistant)
async def create_assistant(
    assistant_data: AssistantCreate,
    service: AssistantService = Depends(get_assistant_service),
):
    """Create new assistant"""
    return await service.create_assistant(assistant_data)


@router.put("/{assistant_id}", response_model=Assistant)
async def update_assistant(
    assistant_id: int,
    assistant_update: AssistantUpdate,
    service: AssistantService = Depends(get_assistant_service),
):
    """
    Update assistant information

    Only updates fields that are provided (partial update)
    """
    try:
        return await service.update_assistant(assistant_id, assistant_update)
    except AssistantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{assistant_id}/summary", response_model=Assistant)
async def update_summary(
    assistant_id: int,
    request: SummaryUpdate,
    service: AssistantService = Depends(get_assistant_service),
):
    """Update the capability summary"""
    try:
        return await service.update_summary(assistant_id, request.summary)
    except AssistantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{assistant_id}/knowledge-files", response_model=Assistant)
async def add_knowledge_file(
    assistant_id: int,
    request: KnowledgeFileRequest,
    service: AssistantService = Depends(get_assistant_service),
):
    """Copy a file into the user data area and attach it as knowledge"""
    try:
        return await service.add_knowledge_file(assistant_id, request.path)
    except AssistantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{assistant_id}")
async def delete_assistant(
    assistant_id: int,
    service: AssistantService = Depends(get_assistant_service),
):
    """Delete assistant (the AutoAssist record cannot be deleted)"""
    try:
        await service.delete_assistant(assistant_id)
        return {"message": "Assistant deleted successfully"}
    except AssistantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

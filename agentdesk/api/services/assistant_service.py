"""
Assistant management service

Handles listing, creating, updating, deleting, exporting and importing
assistant records held by the agent store
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence

from ..config import settings
from ..models.assistant import (
    AUTO_ASSIST_ID,
    Assistant,
    AssistantCreate,
    AssistantUpdate,
    new_auto_assist,
)
from .agent_store import find_assistant, mutate_assistant
from .errors import AssistantNotFoundError
from .service_contracts import AgentStoreLike, FileStoreLike

logger = logging.getLogger(__name__)

ImportMode = Literal["replace", "append"]


def next_assistant_id(assistants: Sequence[Assistant]) -> int:
    """Smallest id greater than every ordinary assistant id."""
    ids = [a.id for a in assistants if a.id != AUTO_ASSIST_ID]
    return max(ids, default=0) + 1


class AssistantService:
    """Assistant management service"""

    def __init__(
        self,
        store: AgentStoreLike,
        file_store: Optional[FileStoreLike] = None,
        knowledge_dir: Optional[Path] = None,
    ):
        """
        Initialize assistant service

        Args:
            store: Agent store holding the assistant collection
            file_store: Used to copy knowledge files and delete generated
                images and knowledge file copies
            knowledge_dir: User data area holding knowledge file copies;
                only files inside it are ever deleted
        """
        self.store = store
        self.file_store = file_store
        self.knowledge_dir = Path(knowledge_dir or settings.files_dir)

    def _is_knowledge_copy(self, path: str) -> bool:
        try:
            return Path(path).resolve().is_relative_to(self.knowledge_dir.resolve())
        except (OSError, ValueError):
            return False

    # ==================== Queries ====================

    async def list_assistants(self) -> List[Assistant]:
        """
        Get all assistants, creating the AutoAssist record when missing
        """
        assistants = await self.store.load_all()
        if find_assistant(assistants, AUTO_ASSIST_ID) is None:
            assistants.append(new_auto_assist())
            await self.store.save_all(assistants)
            logger.info("Created missing AutoAssist record")
        return assistants

    async def get_assistant(self, assistant_id: int) -> Assistant:
        """
        Get specified assistant

        Raises:
            AssistantNotFoundError: If no assistant has this id
        """
        assistant = find_assistant(await self.store.load_all(), assistant_id)
        if assistant is None:
            raise AssistantNotFoundError(assistant_id)
        return assistant

    # ==================== Mutations ====================

    async def create_assistant(self, data: AssistantCreate) -> Assistant:
        """Create an assistant with the next free id"""
        assistants = await self.store.load_all()
        assistant = Assistant(id=next_assistant_id(assistants), **data.model_dump())
        assistants.append(assistant)
        await self.store.save_all(assistants)
        logger.info(f"Created assistant {assistant.id} ({assistant.title})")
        return assistant

    async def update_assistant(self, assistant_id: int, data: AssistantUpdate) -> Assistant:
        """
        Apply a partial update (title, system prompt, knowledge files,
        summary or API settings)

        Raises:
            AssistantNotFoundError: If no assistant has this id
        """
        def apply(assistant: Assistant) -> None:
            for field_name in data.model_fields_set:
                value = getattr(data, field_name)
                # summary is the only field that may be cleared
                if value is None and field_name != "summary":
                    continue
                setattr(assistant, field_name, value)

        mutation = await mutate_assistant(self.store, assistant_id, apply)
        if not mutation.saved:
            raise OSError(f"Failed to save assistant {assistant_id}: {mutation.error}")
        return mutation.assistant

    async def update_summary(self, assistant_id: int, summary: str) -> Assistant:
        """Set the capability summary used by AutoAssist delegation"""
        return await self.update_assistant(assistant_id, AssistantUpdate(summary=summary))

    async def add_knowledge_file(self, assistant_id: int, source_path: str) -> Assistant:
        """
        Copy a user-selected file into the user data area and attach the
        copy to the assistant

        Raises:
            AssistantNotFoundError: If no assistant has this id
            ValueError: If the source file cannot be copied
            OSError: If the updated record cannot be saved
        """
        await self.get_assistant(assistant_id)
        try:
            copied = self.file_store.copy_to_user_data(Path(source_path))
        except OSError as e:
            raise ValueError(f"Cannot copy knowledge file {source_path}: {e}") from e

        def attach(assistant: Assistant) -> None:
            if copied not in assistant.knowledge_file_paths:
                assistant.knowledge_file_paths.append(copied)

        mutation = await mutate_assistant(self.store, assistant_id, attach)
        if not mutation.saved:
            raise OSError(f"Failed to save assistant {assistant_id}: {mutation.error}")
        return mutation.assistant

    async def delete_assistant(self, assistant_id: int) -> None:
        """
        Delete an assistant together with its generated images and
        the knowledge file copies kept in the user data area

        Raises:
            AssistantNotFoundError: If no assistant has this id
            ValueError: If asked to delete the AutoAssist record
        """
        if assistant_id == AUTO_ASSIST_ID:
            raise ValueError("The AutoAssist record cannot be deleted")

        assistants = await self.store.load_all()
        target = find_assistant(assistants, assistant_id)
        if target is None:
            raise AssistantNotFoundError(assistant_id)

        await self.store.save_all([a for a in assistants if a.id != assistant_id])

        if self.file_store is not None:
            for message in target.messages:
                if message.image_path and message.image_path.strip():
                    await self.file_store.delete(message.image_path)
            for path in target.knowledge_file_paths:
                if not self._is_knowledge_copy(path):
                    logger.info(f"Keeping knowledge file outside {self.knowledge_dir}: {path}")
                    continue
                await self.file_store.delete(path)
        logger.info(f"Deleted assistant {assistant_id}")

    # ==================== Export / Import ====================

    async def export_assistants(
        self,
        ids: Optional[Sequence[int]] = None,
        include_history: bool = True,
    ) -> Dict[str, Any]:
        """
        Build an export payload ``{"agents": [...]}``

        Args:
            ids: Assistants to export; all when None
            include_history: When False, messages and wire turns are emptied
        """
        assistants = await self.store.load_all()
        if ids is not None:
            wanted = set(ids)
            assistants = [a for a in assistants if a.id in wanted]

        agents = []
        for assistant in assistants:
            if not include_history:
                assistant = assistant.model_copy(update={"messages": [], "post_messages": []})
            agents.append(assistant.model_dump(mode="json"))
        return {"agents": agents}

    @staticmethod
    def parse_import(raw: str) -> List[Assistant]:
        """
        Parse an export payload, filling fields missing from older exports

        Raises:
            ValueError: If the payload is not a JSON object with an agents list
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Import data is not valid JSON: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("agents", []), list):
            raise ValueError("Import data must be an object with an 'agents' list")

        assistants = []
        for item in data.get("agents") or []:
            normalized = dict(item)
            normalized["knowledge_file_paths"] = normalized.get("knowledge_file_paths") or []
            normalized["post_messages"] = normalized.get("post_messages") or []
            normalized["enable_api_call"] = normalized.get("enable_api_call") is not False
            assistants.append(Assistant(**normalized))
        return assistants

    async def import_assistants(self, raw: str, mode: ImportMode) -> List[Assistant]:
        """
        Import an export payload

        ``replace`` swaps the whole collection; ``append`` adds the imported
        assistants with fresh ids where they collide and never adds a second
        AutoAssist record.
        """
        imported = self.parse_import(raw)

        if mode == "replace":
            assistants = imported
        else:
            assistants = await self.store.load_all()
            taken = {a.id for a in assistants}
            for assistant in imported:
                if assistant.is_auto_assist:
                    if AUTO_ASSIST_ID in taken:
                        continue
                elif assistant.id in taken:
                    assistant = assistant.model_copy(update={"id": next_assistant_id(assistants)})
                assistants.append(assistant)
                taken.add(assistant.id)

        if find_assistant(assistants, AUTO_ASSIST_ID) is None:
            assistants.append(new_auto_assist())
        await self.store.save_all(assistants)
        logger.info(f"Imported {len(imported)} assistant(s) ({mode})")
        return assistants

"""
Agent store

Durable, whole-collection persistence of assistant records in a YAML
file. There is no partial-update primitive: callers reload the collection,
mutate their copy and write the whole collection back.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import aiofiles
import yaml

from ..models.assistant import Assistant
from .errors import AssistantNotFoundError
from .service_contracts import AgentStoreLike

logger = logging.getLogger(__name__)


class AgentStore:
    """YAML-backed assistant collection"""

    def __init__(self, store_path: Path):
        """
        Initialize the store

        Args:
            store_path: YAML file holding the ``agents`` collection
        """
        self.store_path = Path(store_path)
        self._ensure_store_exists()

    def _ensure_store_exists(self):
        """Create an empty collection file if none exists"""
        if not self.store_path.exists():
            self.store_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.store_path, "w", encoding="utf-8") as f:
                yaml.safe_dump({"agents": []}, f, allow_unicode=True, sort_keys=False)

    async def load_all(self) -> List[Assistant]:
        """Read the full collection"""
        async with aiofiles.open(self.store_path, 'r', encoding='utf-8') as f:
            content = await f.read()
        data = yaml.safe_load(content) or {}
        return [Assistant(**item) for item in data.get("agents") or []]

    async def save_all(self, assistants: List[Assistant]) -> None:
        """
        Replace the full collection (atomic write)

        Uses temporary file + replace for atomicity
        """
        temp_path = self.store_path.with_suffix('.yaml.tmp')
        content = yaml.safe_dump(
            {"agents": [assistant.model_dump(mode='json') for assistant in assistants]},
            allow_unicode=True,
            sort_keys=False,
        )
        async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
            await f.write(content)

        temp_path.replace(self.store_path)


@dataclass
class StoreMutation:
    """Outcome of a reload-mutate-write cycle"""
    assistants: List[Assistant]
    assistant: Assistant
    saved: bool
    error: Optional[str] = None


def find_assistant(assistants: List[Assistant], assistant_id: int) -> Optional[Assistant]:
    for assistant in assistants:
        if assistant.id == assistant_id:
            return assistant
    return None


async def mutate_assistant(
    store: AgentStoreLike,
    assistant_id: int,
    mutate: Callable[[Assistant], None],
) -> StoreMutation:
    """Reload the collection, apply ``mutate`` to one record and write it back.

    ``mutate`` is synchronous so nothing else can interleave between the
    reload and the write. A failed write is logged and reported through
    ``StoreMutation.saved``; the mutated in-memory collection is still
    returned so the caller can show progress.

    Raises:
        AssistantNotFoundError: If the record is not in the store
    """
    assistants = await store.load_all()
    index = next((i for i, a in enumerate(assistants) if a.id == assistant_id), None)
    if index is None:
        raise AssistantNotFoundError(assistant_id)

    updated = assistants[index].model_copy(deep=True)
    mutate(updated)
    assistants = [*assistants[:index], updated, *assistants[index + 1:]]

    try:
        await store.save_all(assistants)
    except Exception as e:
        logger.error("Failed to save assistant %s: %s", assistant_id, e)
        return StoreMutation(assistants=assistants, assistant=updated, saved=False, error=str(e))

    return StoreMutation(assistants=assistants, assistant=updated, saved=True)

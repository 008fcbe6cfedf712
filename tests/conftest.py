"""Shared pytest fixtures for all tests."""

import shutil
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from agentdesk.api.models.assistant import (
    APIConfig,
    Assistant,
    WireTurn,
    new_auto_assist,
)
from agentdesk.api.services.service_contracts import ExternalAPIResponse


def _create_workspace_temp_dir(kind: str) -> Path:
    """Create a temporary directory under repository-local .pytest_work."""
    repo_root = Path(__file__).resolve().parents[1]
    root_dir = repo_root / ".pytest_work" / kind
    root_dir.mkdir(parents=True, exist_ok=True)
    temp_dir = root_dir / f"{kind}_{uuid.uuid4().hex[:8]}"
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


@pytest.fixture
def tmp_path():
    """Workspace-local replacement for pytest's tmp_path fixture."""
    temp_dir = _create_workspace_temp_dir("tmp_path")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


# ==================== Fakes ====================

Reply = Union[str, Exception, Callable[[Sequence[WireTurn], str], str]]


class ScriptedCompletion:
    """Completion service returning scripted replies in call order.

    A reply may be a string, an exception to raise, or a callable receiving
    ``(turns, system_instruction)``. When the script runs out, ``default``
    is returned.
    """

    def __init__(self, replies: Optional[List[Reply]] = None, default: str = "ok"):
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, turns, credential, system_instruction):
        self.calls.append({
            "turns": [turn.model_copy(deep=True) for turn in turns],
            "credential": credential,
            "system_instruction": system_instruction,
        })
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(turns, system_instruction)
        return reply


class InMemoryStore:
    """Agent store keeping deep copies of the collection in memory."""

    def __init__(self, assistants: Optional[List[Assistant]] = None):
        self.assistants = [a.model_copy(deep=True) for a in assistants or []]
        self.fail_saves = False
        self.save_count = 0

    async def load_all(self) -> List[Assistant]:
        return [a.model_copy(deep=True) for a in self.assistants]

    async def save_all(self, assistants: List[Assistant]) -> None:
        if self.fail_saves:
            raise OSError("disk full")
        self.save_count += 1
        self.assistants = [a.model_copy(deep=True) for a in assistants]

    def get(self, assistant_id: int) -> Optional[Assistant]:
        return next((a for a in self.assistants if a.id == assistant_id), None)


class RecordingFileStore:
    """File store backed by a dict; records saved and deleted paths."""

    def __init__(self, files: Optional[Dict[str, str]] = None):
        self.files = dict(files or {})
        self.saved: List[str] = []
        self.deleted: List[str] = []

    async def read_base64(self, path: str) -> Optional[str]:
        return self.files.get(path)

    async def save_image(self, base64_data: str) -> str:
        path = f"images/image_{len(self.saved) + 1}.png"
        self.files[path] = base64_data
        self.saved.append(path)
        return path

    async def delete(self, path: str) -> bool:
        self.deleted.append(path)
        return self.files.pop(path, None) is not None

    def copy_to_user_data(self, source_path: Path) -> str:
        source = str(source_path)
        if source not in self.files:
            raise FileNotFoundError(source)
        destination = f"data/files/{Path(source).name}"
        self.files[destination] = self.files[source]
        return destination


class FakeExternalAPI:
    """External API invoker answering per configuration name."""

    def __init__(self, responses: Optional[Dict[str, Union[ExternalAPIResponse, Exception]]] = None):
        self.responses = dict(responses or {})
        self.calls: List[Dict[str, Any]] = []

    async def invoke(self, config: APIConfig, params):
        self.calls.append({"name": config.name, "params": dict(params)})
        response = self.responses.get(config.name, ExternalAPIResponse(success=True, data=f"{config.name} data"))
        if isinstance(response, Exception):
            raise response
        return response


# ==================== Fixtures ====================

@pytest.fixture
def sample_assistants() -> List[Assistant]:
    """Two ordinary assistants plus the AutoAssist record."""
    return [
        Assistant(
            id=1,
            title="Summarizer",
            system_prompt="You summarize documents.",
            summary="Summarizes long documents and files",
        ),
        Assistant(
            id=2,
            title="Kansai Translator",
            system_prompt="You rewrite text in the Kansai dialect.",
            summary="Converts text to the Kansai dialect",
        ),
        new_auto_assist(),
    ]


@pytest.fixture
def memory_store(sample_assistants) -> InMemoryStore:
    return InMemoryStore(sample_assistants)


@pytest.fixture
def file_store() -> RecordingFileStore:
    return RecordingFileStore()

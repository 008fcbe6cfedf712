"""Shared lightweight type contracts for service-layer composition."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..models.assistant import APIConfig, Assistant, WireTurn

ParamBag = Dict[str, Any]


@dataclass
class ExternalAPIResponse:
    """Result of one external API invocation."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    status: Optional[int] = None


class CompletionServiceLike(Protocol):
    """Single-shot text completion over role-tagged wire turns."""

    async def complete(
        self,
        turns: Sequence[WireTurn],
        credential: str,
        system_instruction: str,
    ) -> str: ...


class AgentStoreLike(Protocol):
    """Whole-collection persistence of assistant records."""

    async def load_all(self) -> List[Assistant]: ...

    async def save_all(self, assistants: List[Assistant]) -> None: ...


class ExternalAPILike(Protocol):
    """Executes one HTTP-like call described by an API configuration."""

    async def invoke(self, config: APIConfig, params: ParamBag) -> ExternalAPIResponse: ...


class FileStoreLike(Protocol):
    """Attachment and generated-image storage."""

    async def read_base64(self, path: str) -> Optional[str]: ...

    async def save_image(self, base64_data: str) -> str: ...

    async def delete(self, path: str) -> bool: ...

    def copy_to_user_data(self, source_path: Path) -> str: ...

"""Error types shared by the service layer."""

from dataclasses import dataclass
from typing import Literal


class AgentDeskError(Exception):
    """Base class for service-layer errors."""


class AssistantNotFoundError(AgentDeskError, ValueError):
    """Raised when an assistant id is not present in the store."""

    def __init__(self, assistant_id: int):
        super().__init__(f"Assistant with id '{assistant_id}' not found")
        self.assistant_id = assistant_id


class AutoAssistMissingError(AgentDeskError):
    """The AutoAssist record disappeared from the store mid-operation."""


class CompletionError(AgentDeskError):
    """The completion service failed to produce a reply."""


@dataclass(frozen=True)
class Notice:
    """User-facing feedback attached to an operation outcome."""

    level: Literal["info", "success", "warning", "error"]
    title: str
    description: str = ""

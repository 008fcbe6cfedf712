"""Typed state objects shared by the AutoAssist components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ...models.assistant import Assistant, DisplayMessage, SubtaskInfo, WireTurn
from ..errors import Notice


class AutoAssistState(str, Enum):
    IDLE = "idle"
    AWAIT_CONFIRM = "awaitConfirm"
    EXECUTING = "executing"


@dataclass
class AutoAssistSession:
    """Pending AutoAssist work; lives in memory only."""

    state: AutoAssistState = AutoAssistState.IDLE
    pending_subtasks: List[SubtaskInfo] = field(default_factory=list)
    pending_turn: Optional[WireTurn] = None

    def clear(self) -> None:
        self.state = AutoAssistState.IDLE
        self.pending_subtasks = []
        self.pending_turn = None


@dataclass
class SubtaskResult:
    index: int
    task: str
    assistant_name: str
    output: str
    failed: bool = False


@dataclass
class ExecutionReport:
    """Ordered results of one subtask sequence."""

    results: List[SubtaskResult] = field(default_factory=list)

    @property
    def text(self) -> str:
        sections = [
            f"Task {r.index}: {r.task}\n(assistant: {r.assistant_name})\nResult:\n{r.output}\n"
            for r in self.results
        ]
        return "Final execution results:\n" + "\n".join(sections)


@dataclass
class AutoAssistOutcome:
    """Result of one state machine operation."""

    session: AutoAssistSession
    messages: List[DisplayMessage] = field(default_factory=list)
    assistants: List[Assistant] = field(default_factory=list)
    notices: List[Notice] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def state(self) -> AutoAssistState:
        return self.session.state

    def notify(self, notice: Notice) -> None:
        if notice not in self.notices:
            self.notices.append(notice)

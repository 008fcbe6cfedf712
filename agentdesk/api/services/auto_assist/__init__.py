"""AutoAssist orchestration: decompose, resolve, confirm and execute."""

from .decomposer import TaskDecomposer
from .executor import SubtaskExecutor, find_by_title
from .resolver import AssistantResolver, build_task_context, clean_task
from .state_machine import AutoAssistStateMachine, format_plan
from .types import (
    AutoAssistOutcome,
    AutoAssistSession,
    AutoAssistState,
    ExecutionReport,
    SubtaskResult,
)

__all__ = [
    "TaskDecomposer",
    "SubtaskExecutor",
    "find_by_title",
    "AssistantResolver",
    "build_task_context",
    "clean_task",
    "AutoAssistStateMachine",
    "format_plan",
    "AutoAssistOutcome",
    "AutoAssistSession",
    "AutoAssistState",
    "ExecutionReport",
    "SubtaskResult",
]

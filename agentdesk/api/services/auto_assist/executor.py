"""Sequential execution of resolved subtasks."""

import logging
from typing import List, Optional, Sequence

from ...models.assistant import Assistant, SubtaskInfo, WirePart, WireTurn
from ..service_contracts import CompletionServiceLike
from .types import ExecutionReport, SubtaskResult

logger = logging.getLogger(__name__)

FALLBACK_ASSISTANT_NAME = "AutoAssist/fallback"
FALLBACK_ERROR_MARKER = "(execution error)"
DELEGATE_ERROR_MARKER = "(assistant execution error)"


def find_by_title(catalog: Sequence[Assistant], title: Optional[str]) -> Optional[Assistant]:
    """Case-insensitive exact title match, ignoring surrounding whitespace."""
    if not title or not title.strip():
        return None
    wanted = title.strip().lower()
    for assistant in catalog:
        if not assistant.is_auto_assist and assistant.title.strip().lower() == wanted:
            return assistant
    return None


def build_subtask_turn(context: str, original_turn: Optional[WireTurn]) -> WireTurn:
    """One-shot user turn: context text plus the original turn's attachments."""
    parts = [WirePart(text=context)]
    if original_turn is not None:
        parts.extend(part.model_copy() for part in original_turn.binary_parts())
    return WireTurn(role="user", parts=parts)


class SubtaskExecutor:
    """Runs subtasks in order, threading earlier results into later ones."""

    def __init__(self, completion_service: CompletionServiceLike):
        self.completion_service = completion_service

    @staticmethod
    def fallback_prompt(task: str, previous_results: str) -> str:
        return (
            "You are AutoAssist.\n"
            "Carry out the following task yourself:\n"
            f"{task}\n"
            f"{previous_results}"
        )

    @staticmethod
    def delegate_prompt(assistant: Assistant, task: str, position: int, total: int, has_previous: bool) -> str:
        prompt = (
            f"{assistant.system_prompt}\n\n"
            f"You are currently running task {position}/{total} of an AutoAssist sequence.\n"
            f"Request: {task}\n"
        )
        if has_previous:
            prompt += "Take the results of the previous tasks into account.\n"
        return prompt

    async def run(
        self,
        subtasks: Sequence[SubtaskInfo],
        original_turn: Optional[WireTurn],
        catalog: Sequence[Assistant],
        credential: str,
    ) -> ExecutionReport:
        """Execute every subtask; a failing subtask yields a marker, not an exception."""
        report = ExecutionReport()
        task_results: List[str] = []
        total = len(subtasks)

        for position, subtask in enumerate(subtasks, start=1):
            context = f"Current task ({position}/{total}): {subtask.task}"
            previous_results = ""
            if task_results:
                previous_results = "\n\nResults of previous tasks:\n" + "\n\n".join(task_results)

            turn = build_subtask_turn(f"{context}{previous_results}", original_turn)
            assistant = find_by_title(catalog, subtask.recommended_assistant)
            if assistant is None:
                if subtask.recommended_assistant:
                    logger.info(
                        f"[AutoAssist] No assistant titled {subtask.recommended_assistant!r}, using fallback"
                    )
                assistant_name = FALLBACK_ASSISTANT_NAME
                system_prompt = self.fallback_prompt(subtask.task, previous_results)
                error_marker = FALLBACK_ERROR_MARKER
            else:
                assistant_name = assistant.title
                system_prompt = self.delegate_prompt(assistant, subtask.task, position, total, bool(task_results))
                error_marker = DELEGATE_ERROR_MARKER

            failed = False
            try:
                output = await self.completion_service.complete([turn], credential, system_prompt)
            except Exception as e:
                logger.error(f"[AutoAssist] Task {position}/{total} failed ({assistant_name}): {e}")
                output = error_marker
                failed = True

            task_results.append(f"Result of task {position}:\n{output}")
            report.results.append(
                SubtaskResult(
                    index=position,
                    task=subtask.task,
                    assistant_name=assistant_name,
                    output=output,
                    failed=failed,
                )
            )

        return report

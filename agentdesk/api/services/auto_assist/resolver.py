"""Picks the delegate assistant for each decomposed task."""

import logging
import re
from typing import List, Optional, Sequence

from ...models.assistant import Assistant, SubtaskInfo, WireTurn
from ..json_reply import extract_json
from ..service_contracts import CompletionServiceLike

logger = logging.getLogger(__name__)

_TASK_PREFIX = re.compile(r"^\s*(?:task|タスク)\s*\d+\s*[:：]\s*", re.IGNORECASE)


def clean_task(task: str) -> str:
    """Drop a leading ``taskN:`` / ``タスクN:`` label."""
    return _TASK_PREFIX.sub("", task or "", count=1).strip()


def build_task_context(tasks: Sequence[str], index: int) -> str:
    """Describe where task ``index`` (0-based) sits among ``tasks``.

    Empty for a single task; otherwise names the step position and the
    adjacent previous/next tasks.
    """
    total = len(tasks)
    if total <= 1:
        return ""
    lines = [f"This task is step {index + 1} of {total}."]
    if index > 0:
        lines.append(f"Previous task: {clean_task(tasks[index - 1])}")
    if index < total - 1:
        lines.append(f"Next task: {clean_task(tasks[index + 1])}")
    return "\n".join(lines) + "\n"


def format_catalog(catalog: Sequence[Assistant]) -> str:
    return "\n".join(
        f'Assistant name: "{assistant.title}"\nSummary: "{assistant.summary or ""}"'
        for assistant in catalog
        if not assistant.is_auto_assist
    )


class AssistantResolver:
    """Resolves each task to an assistant title (or None for the fallback)."""

    def __init__(self, completion_service: CompletionServiceLike):
        self.completion_service = completion_service

    @staticmethod
    def build_prompt(catalog_text: str, task: str, context: str) -> str:
        return (
            "Find the assistant whose summary below shows it can carry out the task, "
            "and reply with its name in the following format.\n"
            "Format example:\n"
            '{\n  "assistantTitle": "ReactAssistant"\n}\n'
            "If none fits:\n"
            '{\n  "assistantTitle": null\n}\n\n'
            "[Assistants]\n"
            f"{catalog_text}\n\n"
            "[Task]\n"
            f"{task}\n\n"
            "[Task context]\n"
            f"{context}"
        )

    async def _resolve_one(self, prompt: str, task: str, credential: str) -> Optional[str]:
        try:
            reply = await self.completion_service.complete(
                [WireTurn.from_text("user", task)],
                credential,
                prompt,
            )
        except Exception as e:
            logger.warning(f"[AutoAssist] Resolution call failed for task {task!r}: {e}")
            return None

        parsed = extract_json(reply, dict, {})
        title = parsed.get("assistantTitle")
        if isinstance(title, str) and title.strip():
            return title.strip()
        return None

    async def resolve(
        self,
        tasks: Sequence[str],
        catalog: Sequence[Assistant],
        credential: str,
    ) -> List[SubtaskInfo]:
        """Resolve tasks one at a time, in order."""
        catalog_text = format_catalog(catalog)
        resolved: List[SubtaskInfo] = []
        for index, raw_task in enumerate(tasks):
            task = clean_task(raw_task)
            prompt = self.build_prompt(catalog_text, task, build_task_context(tasks, index))
            recommended = await self._resolve_one(prompt, task, credential)
            logger.info(f"[AutoAssist] Task {index + 1}/{len(tasks)} -> {recommended or 'fallback'}")
            resolved.append(SubtaskInfo(task=task, recommended_assistant=recommended))
        return resolved

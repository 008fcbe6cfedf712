"""Splits one free-form AutoAssist request into ordered subtasks."""

import logging
from typing import List

from ...models.assistant import WireTurn
from ..json_reply import extract_json
from ..service_contracts import CompletionServiceLike

logger = logging.getLogger(__name__)

DECOMPOSE_SYSTEM_PROMPT = (
    "Split the user's request into tasks and return ONLY a JSON array.\n"
    "Follow these rules when splitting:\n\n"
    "1. If the request needs several kinds of processing, split it into logical steps. "
    "Do not force a split when none is needed.\n"
    "2. Give every task a clear, concrete goal.\n"
    "3. When tasks depend on each other (for example task 2 needs the result of task 1), keep that order.\n"
    "4. Keep it to about 2-4 tasks and avoid splitting too finely.\n"
    "5. Give each task a short, explicit name.\n\n"
    "Format:\n"
    '["task1: Analyze the attached file", "task2: Write a summary based on the analysis"]\n\n'
    "The tasks run in order and later tasks can use the results of earlier ones."
)


class TaskDecomposer:
    """Asks the model for an ordered task list; never fails the flow."""

    def __init__(self, completion_service: CompletionServiceLike):
        self.completion_service = completion_service

    async def decompose(self, text: str, credential: str) -> List[str]:
        """Return the task descriptions for ``text``.

        Only the request text is sent; attachments are not. A failed call,
        an unparseable reply or an empty list all yield ``[text]``.
        """
        try:
            reply = await self.completion_service.complete(
                [WireTurn.from_text("user", text)],
                credential,
                DECOMPOSE_SYSTEM_PROMPT,
            )
        except Exception as e:
            logger.warning(f"[AutoAssist] Decomposition call failed, using single task: {e}")
            return [text]

        parsed = extract_json(reply, list, None)
        if parsed is None:
            logger.info("[AutoAssist] Decomposition reply was not a JSON array, using single task")
            return [text]

        tasks = [str(item).strip() for item in parsed if item is not None and str(item).strip()]
        if not tasks:
            return [text]

        logger.info(f"[AutoAssist] Request split into {len(tasks)} task(s)")
        return tasks

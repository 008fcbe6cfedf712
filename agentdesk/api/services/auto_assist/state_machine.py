"""
AutoAssist state machine

Owns the idle -> awaitConfirm -> executing -> idle lifecycle. The session is
passed in and handed back on every outcome; the store is re-read right
before each write so that every persisted step reflects the latest
collection.
"""
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from ...config import settings
from ...models.assistant import (
    AUTO_ASSIST_ID,
    Assistant,
    AttachedFile,
    DisplayMessage,
    SubtaskInfo,
    WireTurn,
)
from ..agent_store import mutate_assistant
from ..attachment_service import build_user_parts
from ..errors import AssistantNotFoundError, AutoAssistMissingError, Notice
from ..service_contracts import AgentStoreLike, CompletionServiceLike, FileStoreLike
from .decomposer import TaskDecomposer
from .executor import SubtaskExecutor
from .resolver import AssistantResolver
from .types import AutoAssistOutcome, AutoAssistSession, AutoAssistState

logger = logging.getLogger(__name__)

CONFIRM_PROMPT = "Run these tasks? (yes to run / no to cancel)"
CANCEL_MESSAGE = "Task execution cancelled."
REPROMPT_MESSAGE = "Answer yes to run or no to cancel."
DECOMPOSE_ERROR_MESSAGE = "An error occurred while splitting the request into tasks."
EXECUTION_ERROR_MESSAGE = "An error occurred while running the tasks."
CONFIRMATION_ERROR_MESSAGE = "An error occurred while processing the message."
SAVE_WARNING = Notice(
    level="warning",
    title="Save error",
    description="The result is shown but may not have been saved.",
)

Entry = Tuple[DisplayMessage, WireTurn]


def user_entry(text: str) -> Entry:
    return DisplayMessage(role="user", content=text), WireTurn.from_text("user", text)


def model_entry(text: str) -> Entry:
    return DisplayMessage(role="assistant", content=text), WireTurn.from_text("model", text)


def format_plan(subtasks: Sequence[SubtaskInfo]) -> str:
    lines = [
        f"Task {index}: {info.task}\n→ Recommended assistant: {info.recommended_assistant or 'none (AutoAssist)'}"
        for index, info in enumerate(subtasks, start=1)
    ]
    return "Split into the following tasks and assigned recommended assistants:\n\n" + "\n\n".join(lines)


class AutoAssistStateMachine:
    """Drives decomposition, confirmation and execution for AutoAssist."""

    def __init__(
        self,
        store: AgentStoreLike,
        completion_service: CompletionServiceLike,
        file_store: Optional[FileStoreLike] = None,
        *,
        decomposer: Optional[TaskDecomposer] = None,
        resolver: Optional[AssistantResolver] = None,
        executor: Optional[SubtaskExecutor] = None,
        agent_mode: Optional[bool] = None,
    ):
        self.store = store
        self.file_store = file_store
        self.decomposer = decomposer or TaskDecomposer(completion_service)
        self.resolver = resolver or AssistantResolver(completion_service)
        self.executor = executor or SubtaskExecutor(completion_service)
        self.agent_mode = settings.auto_assist_agent_mode if agent_mode is None else agent_mode

    # ==================== Persistence ====================

    async def _mutate(self, outcome: AutoAssistOutcome, mutate: Callable[[Assistant], None]) -> None:
        try:
            mutation = await mutate_assistant(self.store, AUTO_ASSIST_ID, mutate)
        except AssistantNotFoundError as e:
            raise AutoAssistMissingError("AutoAssist record not found in the store") from e

        outcome.messages = list(mutation.assistant.messages)
        outcome.assistants = mutation.assistants
        if not mutation.saved:
            outcome.notify(SAVE_WARNING)

    async def _append(self, outcome: AutoAssistOutcome, *entries: Entry, clear_input: bool = False) -> None:
        def apply(assistant: Assistant) -> None:
            for display, wire in entries:
                assistant.messages.append(display)
                assistant.post_messages.append(wire)
            if clear_input:
                assistant.input_message = ""

        await self._mutate(outcome, apply)

    async def _load_catalog(self) -> List[Assistant]:
        assistants = await self.store.load_all()
        return [assistant for assistant in assistants if not assistant.is_auto_assist]

    async def _abort(self, outcome: AutoAssistOutcome, message: str, error: Exception) -> None:
        """Force the session back to idle and record ``message`` if still possible."""
        outcome.session.clear()
        outcome.error = str(error)
        outcome.notify(Notice(level="error", title="Error", description=message))
        try:
            await self._append(outcome, model_entry(message))
        except Exception as e:
            logger.error(f"[AutoAssist] Could not record error message: {e}")

    # ==================== Transitions ====================

    async def handle_input(
        self,
        session: AutoAssistSession,
        text: str,
        files: Sequence[AttachedFile],
        credential: str,
    ) -> AutoAssistOutcome:
        """Route user input by the current state.

        Input that arrives while executing is not a transition: it only
        yields a busy notice and leaves both histories untouched.
        """
        if session.state == AutoAssistState.AWAIT_CONFIRM:
            return await self.answer_confirmation(session, text, credential)
        if session.state == AutoAssistState.EXECUTING:
            outcome = AutoAssistOutcome(session=session)
            outcome.notify(Notice(level="warning", title="Busy", description="AutoAssist is still running tasks."))
            return outcome
        return await self.start_request(session, text, files, credential)

    async def start_request(
        self,
        session: AutoAssistSession,
        text: str,
        files: Sequence[AttachedFile],
        credential: str,
        skip_user_message: bool = False,
    ) -> AutoAssistOutcome:
        """Decompose and resolve a new request.

        With agent mode on the subtasks run immediately; otherwise the plan
        is shown and the session waits for confirmation.
        """
        outcome = AutoAssistOutcome(session=session)
        session.clear()
        try:
            if not skip_user_message:
                await self._append(outcome, user_entry(text), clear_input=True)

            original_turn = WireTurn(role="user", parts=build_user_parts(text, files))
            session.pending_turn = original_turn

            tasks = await self.decomposer.decompose(original_turn.text, credential)
            catalog = await self._load_catalog()
            session.pending_subtasks = await self.resolver.resolve(tasks, catalog, credential)

            await self._append(outcome, model_entry(format_plan(session.pending_subtasks)))

            if self.agent_mode:
                return await self.execute_subtasks(session, credential, outcome=outcome)

            await self._append(outcome, model_entry(CONFIRM_PROMPT))
            session.state = AutoAssistState.AWAIT_CONFIRM
            logger.info(f"[AutoAssist] Awaiting confirmation for {len(session.pending_subtasks)} task(s)")
        except Exception as e:
            logger.error(f"[AutoAssist] Request handling failed: {e}", exc_info=True)
            await self._abort(outcome, DECOMPOSE_ERROR_MESSAGE, e)
        return outcome

    async def answer_confirmation(
        self,
        session: AutoAssistSession,
        text: str,
        credential: str,
    ) -> AutoAssistOutcome:
        """Handle the yes/no answer to a pending plan."""
        outcome = AutoAssistOutcome(session=session)
        answer = text.strip().lower()
        try:
            await self._append(outcome, user_entry(text), clear_input=True)

            if answer == "yes":
                return await self.execute_subtasks(session, credential, outcome=outcome)

            if answer == "no":
                session.clear()
                await self._append(outcome, model_entry(CANCEL_MESSAGE))
                logger.info("[AutoAssist] Pending tasks cancelled")
                return outcome

            await self._append(outcome, model_entry(REPROMPT_MESSAGE))
        except Exception as e:
            logger.error(f"[AutoAssist] Confirmation handling failed: {e}", exc_info=True)
            await self._abort(outcome, CONFIRMATION_ERROR_MESSAGE, e)
        return outcome

    async def execute_subtasks(
        self,
        session: AutoAssistSession,
        credential: str,
        outcome: Optional[AutoAssistOutcome] = None,
    ) -> AutoAssistOutcome:
        """Run the pending subtasks and append the final report.

        The session is cleared and returns to idle whatever happens.
        """
        outcome = outcome or AutoAssistOutcome(session=session)
        session.state = AutoAssistState.EXECUTING
        try:
            catalog = await self._load_catalog()
            report = await self.executor.run(session.pending_subtasks, session.pending_turn, catalog, credential)
            await self._append(outcome, model_entry(report.text))
            logger.info(f"[AutoAssist] Executed {len(report.results)} task(s)")
        except Exception as e:
            logger.error(f"[AutoAssist] Task execution failed: {e}", exc_info=True)
            await self._abort(outcome, EXECUTION_ERROR_MESSAGE, e)
        finally:
            session.clear()
        return outcome

    async def edit_and_rerun(
        self,
        session: AutoAssistSession,
        index: int,
        text: str,
        files: Sequence[AttachedFile],
        credential: str,
    ) -> AutoAssistOutcome:
        """Replace the user message at ``index`` and rerun it as a fresh request.

        Everything from ``index`` on is dropped from both histories and any
        pending plan is discarded.

        Raises:
            ValueError: If ``index`` does not point at a user message
        """
        outcome = AutoAssistOutcome(session=session)
        removed_images: List[str] = []

        def truncate(assistant: Assistant) -> None:
            if index < 0 or index >= len(assistant.messages) or assistant.messages[index].role != "user":
                raise ValueError(f"No user message at index {index}")
            removed_images.extend(m.image_path for m in assistant.messages[index:] if m.image_path)
            display, wire = user_entry(text)
            assistant.messages = [*assistant.messages[:index], display]
            assistant.post_messages = [*assistant.post_messages[:index], wire]

        try:
            await self._mutate(outcome, truncate)
        except AutoAssistMissingError as e:
            logger.error(f"[AutoAssist] Edit failed: {e}")
            await self._abort(outcome, DECOMPOSE_ERROR_MESSAGE, e)
            return outcome

        await self._delete_images(removed_images)
        return await self.start_request(session, text, files, credential, skip_user_message=True)

    async def reset(self, session: AutoAssistSession) -> AutoAssistOutcome:
        """Clear AutoAssist history, its generated images and the session."""
        outcome = AutoAssistOutcome(session=session)
        removed_images: List[str] = []

        def wipe(assistant: Assistant) -> None:
            removed_images.extend(m.image_path for m in assistant.messages if m.image_path)
            assistant.messages = []
            assistant.post_messages = []
            assistant.input_message = ""

        session.clear()
        try:
            await self._mutate(outcome, wipe)
        except Exception as e:
            logger.error(f"[AutoAssist] Reset failed: {e}")
            outcome.error = str(e)
            outcome.notify(Notice(level="error", title="Error", description="Failed to reset AutoAssist."))
            return outcome

        await self._delete_images(removed_images)
        outcome.notify(Notice(level="success", title="AutoAssist reset"))
        return outcome

    async def _delete_images(self, paths: Sequence[str]) -> None:
        if self.file_store is None:
            return
        for path in paths:
            await self.file_store.delete(path)

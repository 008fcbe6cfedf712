"""
Chat service

Runs one ordinary (non-AutoAssist) chat turn: record the user message, run
the external API trigger pipeline, fold image/text results, call the model
and record its reply.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..config import settings
from ..models.assistant import Assistant, AttachedFile, DisplayMessage, WirePart, WireTurn
from .agent_store import StoreMutation, mutate_assistant
from .api_trigger_service import APIProcessingRecord, APITriggerPipeline, enhance_system_prompt
from .attachment_service import build_user_parts, read_knowledge_files
from .errors import AssistantNotFoundError, CompletionError, Notice
from .service_contracts import AgentStoreLike, CompletionServiceLike, ExternalAPILike, FileStoreLike

logger = logging.getLogger(__name__)

IMAGE_GENERATED_MESSAGE = "Image generated."
SAVE_WARNING = Notice(
    level="warning",
    title="Save error",
    description="The message is shown but may not have been saved.",
)


@dataclass
class ChatTurnResult:
    """Outcome of one chat turn."""

    assistant: Optional[Assistant] = None
    reply: Optional[str] = None
    image_path: Optional[str] = None
    api_result: Optional[APIProcessingRecord] = None
    notices: List[Notice] = field(default_factory=list)
    error: Optional[str] = None

    def notify(self, notice: Notice) -> None:
        if notice not in self.notices:
            self.notices.append(notice)


def fold_processed_text(turns: List[WireTurn], processed: str) -> List[WireTurn]:
    """Replace the text part of the last user turn, keeping its attachments."""
    if not turns or turns[-1].role != "user":
        return turns
    last = turns[-1]
    folded = WireTurn(role="user", parts=[WirePart(text=processed), *last.binary_parts()])
    return [*turns[:-1], folded]


class ChatService:
    """Service for ordinary assistant conversations"""

    def __init__(
        self,
        store: AgentStoreLike,
        completion_service: CompletionServiceLike,
        file_store: FileStoreLike,
        external_api: Optional[ExternalAPILike] = None,
        pipeline: Optional[APITriggerPipeline] = None,
    ):
        self.store = store
        self.completion_service = completion_service
        self.file_store = file_store
        if pipeline is None and external_api is not None:
            pipeline = APITriggerPipeline(completion_service, external_api)
        self.pipeline = pipeline

    async def _record(self, result: ChatTurnResult, assistant_id: int, mutate) -> StoreMutation:
        mutation = await mutate_assistant(self.store, assistant_id, mutate)
        result.assistant = mutation.assistant
        if not mutation.saved:
            result.notify(SAVE_WARNING)
        return mutation

    async def _collect_files(
        self,
        assistant: Assistant,
        files: Sequence[AttachedFile],
        use_knowledge_files: bool,
    ) -> List[AttachedFile]:
        collected = list(files)
        if use_knowledge_files and assistant.knowledge_file_paths:
            collected.extend(await read_knowledge_files(assistant.knowledge_file_paths, self.file_store))
        return collected

    @staticmethod
    def _ensure_ordinary(assistant: Assistant) -> None:
        if assistant.is_auto_assist:
            raise ValueError("AutoAssist messages are handled by the AutoAssist state machine")

    async def _load(self, assistant_id: int) -> Assistant:
        for assistant in await self.store.load_all():
            if assistant.id == assistant_id:
                return assistant
        raise AssistantNotFoundError(assistant_id)

    # ==================== Turns ====================

    async def send_message(
        self,
        assistant_id: int,
        text: str,
        files: Sequence[AttachedFile] = (),
        credential: str = "",
        use_knowledge_files: bool = False,
    ) -> ChatTurnResult:
        """
        Send a user message and get the assistant's reply

        Raises:
            AssistantNotFoundError: If no assistant has this id
            ValueError: If the id is the AutoAssist record
        """
        assistant = await self._load(assistant_id)
        self._ensure_ordinary(assistant)
        history = list(assistant.messages)
        all_files = await self._collect_files(assistant, files, use_knowledge_files)

        result = ChatTurnResult()

        def append_user(target: Assistant) -> None:
            target.messages.append(DisplayMessage(role="user", content=text))
            target.post_messages.append(WireTurn(role="user", parts=build_user_parts(text, all_files)))
            target.input_message = ""

        await self._record(result, assistant_id, append_user)
        await self._run_turn(result, assistant_id, text, credential, history)
        return result

    async def edit_message(
        self,
        assistant_id: int,
        index: int,
        text: str,
        files: Sequence[AttachedFile] = (),
        credential: str = "",
        use_knowledge_files: bool = False,
    ) -> ChatTurnResult:
        """
        Replace the user message at ``index`` and rerun the conversation
        from there; generated images of the dropped tail are deleted

        Raises:
            AssistantNotFoundError: If no assistant has this id
            ValueError: If ``index`` does not point at a user message
        """
        assistant = await self._load(assistant_id)
        self._ensure_ordinary(assistant)
        all_files = await self._collect_files(assistant, files, use_knowledge_files)

        result = ChatTurnResult()
        removed_images: List[str] = []
        history: List[DisplayMessage] = []

        def truncate(target: Assistant) -> None:
            if index < 0 or index >= len(target.messages) or target.messages[index].role != "user":
                raise ValueError(f"No user message at index {index}")
            removed_images.extend(m.image_path for m in target.messages[index + 1:] if m.image_path)
            history.extend(target.messages[:index])
            target.messages = [*target.messages[:index], DisplayMessage(role="user", content=text)]
            target.post_messages = [
                *target.post_messages[:index],
                WireTurn(role="user", parts=build_user_parts(text, all_files)),
            ]
            target.input_message = ""

        await self._record(result, assistant_id, truncate)
        for path in removed_images:
            await self.file_store.delete(path)

        await self._run_turn(result, assistant_id, text, credential, history)
        if result.error is None:
            result.notify(Notice(level="info", title="Message edited", description="The conversation was rerun."))
        return result

    async def reset_chat(self, assistant_id: int) -> Assistant:
        """
        Clear an assistant's history and delete its generated images

        Raises:
            AssistantNotFoundError: If no assistant has this id
        """
        removed_images: List[str] = []

        def wipe(target: Assistant) -> None:
            removed_images.extend(m.image_path for m in target.messages if m.image_path)
            target.messages = []
            target.post_messages = []
            target.input_message = ""

        mutation = await mutate_assistant(self.store, assistant_id, wipe)
        for path in removed_images:
            await self.file_store.delete(path)
        logger.info(f"[Chat] Reset history of assistant {assistant_id}")
        return mutation.assistant

    # ==================== Internals ====================

    def _pipeline_enabled(self, assistant: Assistant) -> bool:
        return (
            self.pipeline is not None
            and settings.enable_external_api
            and assistant.enable_api_call
            and bool(assistant.api_configs)
        )

    async def _run_turn(
        self,
        result: ChatTurnResult,
        assistant_id: int,
        text: str,
        credential: str,
        history: Sequence[DisplayMessage],
    ) -> None:
        assistant = result.assistant
        processed = text

        if self._pipeline_enabled(assistant):
            try:
                trigger_result = await self.pipeline.process(text, assistant.api_configs, credential, history)
            except Exception as e:
                logger.error(f"[Chat] API processing failed: {e}", exc_info=True)
                result.api_result = APIProcessingRecord(original_message=text, error=str(e) or "unknown error")
            else:
                processed = trigger_result.processed_message
                if processed != text:
                    result.api_result = APIProcessingRecord(original_message=text, processed_message=processed)

                if trigger_result.image_response is not None:
                    image_saved = await self._save_image_reply(
                        result, assistant_id, trigger_result.image_response.base64_data
                    )
                    if image_saved and trigger_result.is_image_only:
                        return

        current = await self._load(assistant_id)
        turns = list(current.post_messages)
        if processed != text:
            turns = fold_processed_text(turns, processed)

        system_prompt = current.system_prompt
        if result.api_result is not None:
            system_prompt = enhance_system_prompt(system_prompt, assistant.api_configs, result.api_result)

        try:
            reply = await self.completion_service.complete(turns, credential, system_prompt)
        except CompletionError as e:
            logger.error(f"[Chat] Completion failed for assistant {assistant_id}: {e}")
            result.error = str(e)
            result.notify(Notice(level="error", title="Error", description="Failed to send the message."))
            return

        def append_reply(target: Assistant) -> None:
            target.messages.append(DisplayMessage(role="assistant", content=reply))
            target.post_messages.append(WireTurn.from_text("model", reply))

        await self._record(result, assistant_id, append_reply)
        result.reply = reply

    async def _save_image_reply(self, result: ChatTurnResult, assistant_id: int, base64_data: str) -> bool:
        try:
            image_path = await self.file_store.save_image(base64_data)
        except (OSError, ValueError) as e:
            logger.error(f"[Chat] Failed to save generated image: {e}")
            return False

        def append_image(target: Assistant) -> None:
            target.messages.append(
                DisplayMessage(role="assistant", content=IMAGE_GENERATED_MESSAGE, image_path=image_path)
            )
            target.post_messages.append(WireTurn.from_text("model", IMAGE_GENERATED_MESSAGE))

        await self._record(result, assistant_id, append_image)
        result.image_path = image_path
        return True

"""
Completion service

Sends role-tagged wire turns plus a system instruction to the hosted chat
model and returns a single text completion. No retries: failures are
raised as ``CompletionError`` and every caller decides its own fallback.
"""
import base64
import binascii
import logging
from typing import Callable, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from ..config import settings
from ..models.assistant import WireTurn
from .errors import CompletionError
from agentdesk.utils.llm_logger import get_llm_logger

logger = logging.getLogger(__name__)

LLMFactory = Callable[[str], ChatOpenAI]

_MODEL_ROLES = {"model", "assistant", "ai"}


def wire_turns_to_messages(turns: Sequence[WireTurn], system_instruction: str) -> List[BaseMessage]:
    """Convert wire turns to LangChain messages, supporting multimodal content.

    Images become ``image_url`` blocks with a data URI, text attachments are
    decoded inline, other binary attachments are announced by MIME type.
    """
    messages: List[BaseMessage] = []
    if system_instruction and system_instruction.strip():
        messages.append(SystemMessage(content=system_instruction))

    for turn in turns:
        if turn.role in _MODEL_ROLES:
            messages.append(AIMessage(content="\n".join(p.text for p in turn.parts if p.text)))
            continue

        has_binary = any(part.inline_data is not None for part in turn.parts)
        if not has_binary:
            messages.append(HumanMessage(content="\n".join(p.text for p in turn.parts if p.text)))
            continue

        content_list = []
        for part in turn.parts:
            if part.text:
                content_list.append({"type": "text", "text": part.text})
                continue
            if part.inline_data is None:
                continue
            mime_type = part.inline_data.mime_type
            if mime_type.startswith("image/"):
                content_list.append({
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{part.inline_data.data}"},
                })
            elif mime_type.startswith("text/") or mime_type in ("application/json", "application/xml"):
                try:
                    decoded = base64.b64decode(part.inline_data.data).decode("utf-8")
                except (binascii.Error, ValueError):
                    logger.warning(f"Could not decode {mime_type} attachment as UTF-8, skipping")
                    continue
                content_list.append({"type": "text", "text": f"[attachment: {mime_type}]\n{decoded}"})
            else:
                content_list.append({"type": "text", "text": f"[attachment omitted: {mime_type}]"})
        messages.append(HumanMessage(content=content_list))

    return messages


def _extract_text(response: object) -> str:
    content = getattr(response, "content", "")
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict):
                text = item.get("text")
                if text:
                    parts.append(str(text))
            elif isinstance(item, str):
                parts.append(item)
        content = "".join(parts)
    return str(content or "")


class CompletionService:
    """LangChain-backed completion service"""

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        llm_factory: Optional[LLMFactory] = None,
    ):
        self.model = model or settings.completion_model
        self.base_url = base_url or settings.completion_base_url
        self.temperature = settings.completion_temperature if temperature is None else temperature
        self._llm_factory = llm_factory or self._default_llm

    def _default_llm(self, credential: str) -> ChatOpenAI:
        return ChatOpenAI(
            model=self.model,
            api_key=credential or settings.completion_api_key or "missing-api-key",
            base_url=self.base_url,
            temperature=self.temperature,
            max_retries=0,
        )

    async def complete(
        self,
        turns: Sequence[WireTurn],
        credential: str,
        system_instruction: str,
    ) -> str:
        """Return the model's reply to ``turns``.

        Raises:
            CompletionError: If the provider call fails
        """
        llm_logger = get_llm_logger()
        messages = wire_turns_to_messages(turns, system_instruction)
        try:
            llm = self._llm_factory(credential)
            response = await llm.ainvoke(messages)
        except Exception as e:
            llm_logger.log_error(e, context=f"model={self.model}")
            raise CompletionError(f"Completion request failed: {e}") from e

        text = _extract_text(response)
        llm_logger.log_interaction(turns, system_instruction, text, model=self.model)
        return text

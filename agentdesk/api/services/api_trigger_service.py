"""
API Trigger Service

Per-turn augmentation of a user message with external API results:
trigger detection, parameter extraction, sequential invocation and
folding of text/image results, plus the matching system prompt extension.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..config import settings
from ..models.assistant import APIConfig, APITrigger, DisplayMessage, WireTurn
from .json_reply import extract_json
from .service_contracts import CompletionServiceLike, ExternalAPILike, ParamBag

logger = logging.getLogger(__name__)

EXTRACTION_SYSTEM_PROMPT = "You are a parameter extraction engine. Return JSON only."


def _split_keywords(value: str) -> List[str]:
    return [keyword.strip() for keyword in (value or "").split(",") if keyword.strip()]


def trigger_matches(trigger: APITrigger, text: str) -> bool:
    """Return True if one trigger rule matches ``text``.

    Keyword triggers match on a case-insensitive substring of any of their
    comma-separated keywords; pattern triggers are case-insensitive regular
    expressions. An invalid pattern is logged and never matches.
    """
    if trigger.type == "keyword":
        lowered = text.lower()
        return any(keyword.lower() in lowered for keyword in _split_keywords(trigger.value))
    if trigger.type == "pattern":
        try:
            return re.search(trigger.value, text, re.IGNORECASE) is not None
        except re.error as e:
            logger.error(f"[APITrigger] Invalid pattern {trigger.value!r}: {e}")
    return False


def config_matches(config: APIConfig, text: str) -> bool:
    return any(trigger_matches(trigger, text) for trigger in config.triggers)


def detect_triggered_apis(text: str, configs: Sequence[APIConfig]) -> List[APIConfig]:
    """Configurations with at least one matching trigger, in input order."""
    return [config for config in configs if config.triggers and config_matches(config, text)]


def _history_params(history: Sequence[DisplayMessage]) -> ParamBag:
    params: ParamBag = {
        "conversationHistory": [message.model_dump() for message in history],
    }
    if not history:
        return params

    openai_history = [
        {"role": "user" if m.role == "user" else "assistant", "content": m.content}
        for m in history
    ]
    gemini_history = [
        {"role": "user" if m.role == "user" else "model", "parts": [{"text": m.content}]}
        for m in history
    ]
    params["openAIFormattedHistory"] = openai_history
    params["openAIFormattedHistoryStr"] = json.dumps(openai_history, ensure_ascii=False, separators=(",", ":"))[1:-1]
    params["geminiFormattedHistory"] = gemini_history
    params["geminiFormattedHistoryStr"] = json.dumps(gemini_history, ensure_ascii=False, separators=(",", ":"))[1:-1]
    return params


@dataclass
class ImageResponse:
    """Image produced by an external API for the current turn."""

    base64_data: str
    prompt: str


@dataclass
class APITriggerResult:
    processed_message: str
    image_response: Optional[ImageResponse] = None
    is_image_only: bool = False


@dataclass
class APIProcessingRecord:
    """What the pipeline did to the latest user message."""

    original_message: str
    processed_message: Optional[str] = None
    error: Optional[str] = None


class ParameterExtractor:
    """Builds the parameter bag for one matched API configuration."""

    def __init__(self, completion_service: CompletionServiceLike):
        self.completion_service = completion_service

    @staticmethod
    def simple_params(text: str, config: APIConfig) -> ParamBag:
        params: ParamBag = {"prompt": text}
        if config.auth_config and config.auth_config.token:
            params["apiKey"] = config.auth_config.token
        return params

    @staticmethod
    def build_extraction_prompt(text: str, config: APIConfig) -> str:
        param_lines = "\n".join(
            f"- {spec.param_name}: {spec.description}" for spec in config.parameter_extraction
        )
        return (
            "You are a parameter extraction engine.\n"
            "Extract the required parameters from the user message.\n\n"
            "User message:\n"
            f'"{text}"\n\n'
            "Parameters to extract:\n"
            f"{param_lines}\n\n"
            "Return the result as JSON in this form:\n"
            '{\n  "parameter_name": "extracted value"\n}\n'
            "No explanations. Return JSON only."
        )

    async def extract(self, text: str, config: APIConfig, credential: str) -> ParamBag:
        """Return the parameters for ``config``; never raises for reply problems."""
        fallback = self.simple_params(text, config)
        if not config.parameter_extraction:
            return fallback

        prompt = self.build_extraction_prompt(text, config)
        try:
            reply = await self.completion_service.complete(
                [WireTurn.from_text("user", prompt)],
                credential,
                EXTRACTION_SYSTEM_PROMPT,
            )
        except Exception as e:
            logger.warning(f"[APITrigger] Parameter extraction failed for {config.name}: {e}")
            return fallback

        extracted = extract_json(reply, dict, None)
        if extracted is None:
            logger.info(f"[APITrigger] Unparseable extraction reply for {config.name}, using prompt only")
            return fallback

        params: ParamBag = dict(extracted)
        if config.auth_config and config.auth_config.token:
            params["apiKey"] = config.auth_config.token
        params["originalMessage"] = text
        return params


class APITriggerPipeline:
    """Detector, extractor and invoker composed over one user turn."""

    def __init__(
        self,
        completion_service: CompletionServiceLike,
        external_api: ExternalAPILike,
        extractor: Optional[ParameterExtractor] = None,
    ):
        self.external_api = external_api
        self.extractor = extractor or ParameterExtractor(completion_service)

    @staticmethod
    def _format_result(data: Any) -> str:
        if isinstance(data, str):
            return data
        return json.dumps(data, ensure_ascii=False, indent=2)

    async def process(
        self,
        text: str,
        configs: Sequence[APIConfig],
        credential: str,
        history: Sequence[DisplayMessage] = (),
    ) -> APITriggerResult:
        """Run every matched configuration in order and fold the results.

        Text results are appended as labelled notes; an image result becomes
        the pending image artifact. Failures of one configuration never stop
        the others.
        """
        if not settings.enable_external_api:
            return APITriggerResult(processed_message=text)

        triggered = detect_triggered_apis(text, configs)
        if not triggered:
            return APITriggerResult(processed_message=text)

        logger.info(f"[APITrigger] {len(triggered)} API(s) triggered: {[c.name for c in triggered]}")
        processed = text
        image_response: Optional[ImageResponse] = None
        is_image_only = False
        history_params = _history_params(history)

        for config in triggered:
            label = f"\n\n[supplementary info: {config.name}]\n"
            try:
                params = await self.extractor.extract(text, config, credential)
                params.update(history_params)
                params["prompt"] = text

                response = await self.external_api.invoke(config, params)

                if config.response_type == "image":
                    if response.success and response.data:
                        image_response = ImageResponse(base64_data=str(response.data), prompt=text)
                        if config_matches(config, text):
                            is_image_only = True
                    else:
                        logger.warning(f"[APITrigger] Image API {config.name} returned no image: {response.error}")
                    continue

                if response.success:
                    result_text = self._format_result(response.data)
                else:
                    result_text = f"Error: {response.error or 'unknown error'}"
                processed += f"{label}{result_text}"
            except Exception as e:
                logger.error(f"[APITrigger] API call failed: {config.name}: {e}", exc_info=True)
                processed += f"{label}An error occurred while calling the API."

        return APITriggerResult(
            processed_message=processed,
            image_response=image_response,
            is_image_only=is_image_only,
        )


def enhance_system_prompt(
    original_prompt: str,
    configs: Sequence[APIConfig],
    api_result: Optional[APIProcessingRecord] = None,
) -> str:
    """Extend a system prompt with the available information sources.

    Pure function. With no configurations the prompt is returned unchanged.
    """
    if not configs:
        return original_prompt

    source_lines = []
    for config in configs:
        provides = ", ".join(t.description for t in config.triggers if t.description) or "none"
        source_lines.append(
            f"- API name: {config.name}\n"
            f"  - Description: {config.description or 'none'}\n"
            f"  - Provides: {provides}"
        )
    sources = "\n".join(source_lines)

    result_note = ""
    if api_result is not None:
        if api_result.error:
            result_note = (
                "\nNote: an API call for the latest user message failed.\n"
                f"Error: {api_result.error}\n\n"
                "This is an internal error the user has not been told about.\n"
                "Respond normally and do not mention this error.\n"
            )
        elif api_result.processed_message and api_result.processed_message != api_result.original_message:
            result_note = (
                "\nNote: API calls were made for the latest user message and their results were added to it.\n"
                f'Original message: "{api_result.original_message}"\n'
                f'Message including API data: "{api_result.processed_message}"\n\n'
                "The user cannot see this added information and does not know it is there,\n"
                "so weave it into your answer naturally.\n"
            )

    return (
        f"{original_prompt}\n\n"
        "You have access to several external information sources. Depending on the user's "
        "question or request, data from these sources is provided automatically. "
        "The available sources are:\n\n"
        f"{sources}\n"
        f"{result_note}\n"
        "Data from these sources may be included in the user's message. Use it to give the best answer.\n\n"
        "When data is provided, use it without explaining which API it came from; "
        "work it into the answer naturally.\n\n"
        "When no data is provided, answer as well as you can from general knowledge."
    )

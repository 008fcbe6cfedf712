"""Unit tests for API trigger detection, extraction and the trigger pipeline."""

import asyncio

import pytest

from agentdesk.api.config import settings
from agentdesk.api.models.assistant import (
    APIAuthConfig,
    APIConfig,
    APITrigger,
    DisplayMessage,
    ParameterSpec,
)
from agentdesk.api.services.api_trigger_service import (
    APIProcessingRecord,
    APITriggerPipeline,
    ParameterExtractor,
    detect_triggered_apis,
    enhance_system_prompt,
    trigger_matches,
)
from agentdesk.api.services.service_contracts import ExternalAPIResponse

from conftest import FakeExternalAPI, ScriptedCompletion


def _config(name, triggers, **kwargs):
    return APIConfig(id=name, name=name, endpoint=f"https://example.com/{name}", triggers=triggers, **kwargs)


WEATHER = _config(
    "weather",
    [APITrigger(type="keyword", value="天気, weather", description="current weather")],
    description="Weather forecasts",
)
NEWS = _config("news", [APITrigger(type="pattern", value=r"news|headline", description="latest headlines")])
IMAGE = _config(
    "image-gen",
    [APITrigger(type="keyword", value="draw", description="generated images")],
    response_type="image",
)


# ==================== Detection ====================

def test_keyword_trigger_is_case_insensitive_substring():
    trigger = APITrigger(type="keyword", value="Weather, forecast")
    assert trigger_matches(trigger, "What's the WEATHER like?")
    assert not trigger_matches(trigger, "hello")


def test_empty_keywords_are_ignored():
    trigger = APITrigger(type="keyword", value=" , ,")
    assert not trigger_matches(trigger, "anything")


def test_invalid_pattern_never_matches():
    trigger = APITrigger(type="pattern", value="([unclosed")
    assert trigger_matches(trigger, "([unclosed") is False


def test_config_without_triggers_never_fires():
    silent = _config("silent", [])
    assert detect_triggered_apis("weather news draw anything", [silent]) == []


def test_detection_is_order_independent():
    text = "today's weather and the news"
    forward = {c.name for c in detect_triggered_apis(text, [WEATHER, NEWS])}
    backward = {c.name for c in detect_triggered_apis(text, [NEWS, WEATHER])}
    assert forward == backward == {"weather", "news"}


# ==================== Extraction ====================

def test_simple_params_include_token():
    config = _config("weather", WEATHER.triggers, auth_config=APIAuthConfig(token="secret"))
    extractor = ParameterExtractor(ScriptedCompletion())
    params = asyncio.run(extractor.extract("weather in Osaka", config, "cred"))
    assert params == {"prompt": "weather in Osaka", "apiKey": "secret"}


def test_llm_extraction_adds_token_and_original_message():
    config = _config(
        "weather",
        WEATHER.triggers,
        auth_config=APIAuthConfig(token="secret"),
        parameter_extraction=[ParameterSpec(param_name="city", description="City name")],
    )
    completion = ScriptedCompletion(['Here: {"city": "Osaka"}'])
    params = asyncio.run(ParameterExtractor(completion).extract("weather in Osaka", config, "cred"))

    assert params == {"city": "Osaka", "apiKey": "secret", "originalMessage": "weather in Osaka"}
    assert "- city: City name" in completion.calls[0]["turns"][0].text
    assert completion.calls[0]["credential"] == "cred"


@pytest.mark.parametrize("reply", ["no json here", ["boom"]])
def test_llm_extraction_falls_back_to_simple_bag(reply):
    config = _config(
        "weather",
        WEATHER.triggers,
        parameter_extraction=[ParameterSpec(param_name="city", description="City name")],
    )
    script = [RuntimeError("boom")] if isinstance(reply, list) else [reply]
    params = asyncio.run(ParameterExtractor(ScriptedCompletion(script)).extract("weather?", config, "cred"))
    assert params == {"prompt": "weather?"}


# ==================== Pipeline ====================

@pytest.mark.asyncio
async def test_text_result_is_appended_as_supplementary_info():
    api = FakeExternalAPI({"weather": ExternalAPIResponse(success=True, data="Sunny, 25C")})
    pipeline = APITriggerPipeline(ScriptedCompletion(), api)

    result = await pipeline.process("今日の天気は？", [WEATHER], "cred")

    assert result.processed_message == "今日の天気は？\n\n[supplementary info: weather]\nSunny, 25C"
    assert result.processed_message.count("[supplementary info:") == 1
    assert result.image_response is None
    assert result.is_image_only is False


@pytest.mark.asyncio
async def test_structured_result_is_pretty_printed():
    api = FakeExternalAPI({"weather": ExternalAPIResponse(success=True, data={"temp": 25})})
    result = await APITriggerPipeline(ScriptedCompletion(), api).process("weather", [WEATHER], "cred")
    assert result.processed_message.endswith('[supplementary info: weather]\n{\n  "temp": 25\n}')


@pytest.mark.asyncio
async def test_failures_are_folded_without_stopping_other_configs():
    api = FakeExternalAPI({
        "weather": ExternalAPIResponse(success=False, error="HTTP 500: oops"),
        "news": RuntimeError("connection reset"),
    })
    result = await APITriggerPipeline(ScriptedCompletion(), api).process("weather news", [WEATHER, NEWS], "c")

    assert "[supplementary info: weather]\nError: HTTP 500: oops" in result.processed_message
    assert "[supplementary info: news]\nAn error occurred while calling the API." in result.processed_message
    assert [call["name"] for call in api.calls] == ["weather", "news"]


@pytest.mark.asyncio
async def test_failure_without_message_reports_unknown_error():
    api = FakeExternalAPI({"weather": ExternalAPIResponse(success=False)})
    result = await APITriggerPipeline(ScriptedCompletion(), api).process("weather", [WEATHER], "c")
    assert result.processed_message.endswith("Error: unknown error")


@pytest.mark.asyncio
async def test_image_result_becomes_image_only_artifact():
    api = FakeExternalAPI({"image-gen": ExternalAPIResponse(success=True, data="aGVsbG8=")})
    result = await APITriggerPipeline(ScriptedCompletion(), api).process("draw a cat", [IMAGE], "c")

    assert result.image_response is not None
    assert result.image_response.base64_data == "aGVsbG8="
    assert result.image_response.prompt == "draw a cat"
    assert result.is_image_only is True
    assert result.processed_message == "draw a cat"


@pytest.mark.asyncio
async def test_failed_image_config_is_skipped():
    api = FakeExternalAPI({"image-gen": ExternalAPIResponse(success=False, error="quota")})
    result = await APITriggerPipeline(ScriptedCompletion(), api).process("draw a cat", [IMAGE], "c")
    assert result.image_response is None
    assert result.processed_message == "draw a cat"


@pytest.mark.asyncio
async def test_history_is_passed_in_openai_and_gemini_forms():
    api = FakeExternalAPI()
    history = [
        DisplayMessage(role="user", content="hi"),
        DisplayMessage(role="assistant", content="hello"),
    ]
    await APITriggerPipeline(ScriptedCompletion(), api).process("weather", [WEATHER], "c", history)

    params = api.calls[0]["params"]
    assert params["prompt"] == "weather"
    assert params["openAIFormattedHistory"][1] == {"role": "assistant", "content": "hello"}
    assert params["geminiFormattedHistory"][1] == {"role": "model", "parts": [{"text": "hello"}]}
    assert params["openAIFormattedHistoryStr"] == (
        '{"role":"user","content":"hi"},{"role":"assistant","content":"hello"}'
    )
    assert params["geminiFormattedHistoryStr"] == (
        '{"role":"user","parts":[{"text":"hi"}]},{"role":"model","parts":[{"text":"hello"}]}'
    )
    assert len(params["conversationHistory"]) == 2


@pytest.mark.asyncio
async def test_pipeline_is_noop_without_matches():
    api = FakeExternalAPI()
    pipeline = APITriggerPipeline(ScriptedCompletion(), api)
    first = await pipeline.process("tell me a joke", [WEATHER, NEWS], "c")
    second = await pipeline.process(first.processed_message, [WEATHER, NEWS], "c")
    assert second.processed_message == "tell me a joke"
    assert api.calls == []


@pytest.mark.asyncio
async def test_pipeline_respects_global_switch(monkeypatch):
    monkeypatch.setattr(settings, "enable_external_api", False)
    api = FakeExternalAPI()
    result = await APITriggerPipeline(ScriptedCompletion(), api).process("weather", [WEATHER], "c")
    assert result.processed_message == "weather"
    assert api.calls == []


# ==================== System prompt ====================

def test_enhance_without_configs_returns_original():
    assert enhance_system_prompt("Be nice.", []) == "Be nice."


def test_enhance_lists_sources():
    prompt = enhance_system_prompt("Be nice.", [WEATHER])
    assert prompt.startswith("Be nice.")
    assert "- API name: weather" in prompt
    assert "Description: Weather forecasts" in prompt
    assert "Provides: current weather" in prompt


def test_enhance_with_error_tells_model_not_to_mention_it():
    record = APIProcessingRecord(original_message="weather", error="timeout")
    prompt = enhance_system_prompt("Be nice.", [WEATHER], record)
    assert "Error: timeout" in prompt
    assert "do not mention this error" in prompt


def test_enhance_with_processed_message_mentions_merged_data():
    record = APIProcessingRecord(original_message="weather", processed_message="weather\n\n[supplementary info: weather]\nSunny")
    prompt = enhance_system_prompt("Be nice.", [WEATHER], record)
    assert 'Original message: "weather"' in prompt
    assert "cannot see this added information" in prompt


def test_enhance_is_pure():
    record = APIProcessingRecord(original_message="a", processed_message="a")
    assert enhance_system_prompt("p", [WEATHER], record) == enhance_system_prompt("p", [WEATHER], record)
    assert "Original message" not in enhance_system_prompt("p", [WEATHER], record)

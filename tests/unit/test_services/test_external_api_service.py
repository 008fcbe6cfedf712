"""Unit tests for the httpx-backed external API invoker."""

import base64
import json

import httpx
import pytest

from agentdesk.api.models.assistant import APIAuthConfig, APIConfig
from agentdesk.api.services.external_api_service import (
    ExternalAPIService,
    lookup_path,
    render_json_template,
    render_template,
)


def _config(**kwargs):
    values = {"id": "cfg", "name": "cfg", "endpoint": "https://api.example.com/v1/search"}
    values.update(kwargs)
    return APIConfig(**values)


def _service(handler):
    return ExternalAPIService(timeout_seconds=5, transport=httpx.MockTransport(handler))


def test_render_template_substitutes_and_blanks_unknown():
    assert render_template("q={{ city }}&n={{count}}&x={{missing}}", {"city": "Osaka", "count": 3}) == "q=Osaka&n=3&x="


def test_render_json_template_escapes_strings():
    body = render_json_template('{"prompt": "{{prompt}}", "n": {{n}}}', {"prompt": 'say "hi"\nnow', "n": 2})
    assert json.loads(body) == {"prompt": 'say "hi"\nnow', "n": 2}


def test_lookup_path_handles_dots_and_brackets():
    data = {"data": [{"b64_json": "AAA"}], "images": [{"url": "u"}]}
    assert lookup_path(data, "data.0.b64_json") == "AAA"
    assert lookup_path(data, "images[0].url") == "u"
    assert lookup_path(data, "data.5.b64_json") is None
    assert lookup_path(data, "nope.x") is None


def test_build_request_get_with_query_and_bearer():
    config = _config(
        query_params_template="?q={{prompt}}&lang=ja",
        auth_type="bearer",
        auth_config=APIAuthConfig(token="tok"),
        body_template='{"ignored": true}',
    )
    request = ExternalAPIService(timeout_seconds=1).build_request(config, {"prompt": "天気"})

    assert request["method"] == "GET"
    assert request["params"] == [("q", "天気"), ("lang", "ja")]
    assert request["headers"]["Authorization"] == "Bearer tok"
    assert "content" not in request


def test_build_request_api_key_in_query():
    config = _config(
        auth_type="apiKey",
        auth_config=APIAuthConfig(key_name="key", key_value="abc", in_header=False),
    )
    request = ExternalAPIService(timeout_seconds=1).build_request(config, {})
    assert ("key", "abc") in request["params"]
    assert "key" not in request["headers"]


def test_build_request_post_sets_json_body():
    config = _config(method="POST", body_template='{"prompt": "{{prompt}}"}')
    request = ExternalAPIService(timeout_seconds=1).build_request(config, {"prompt": "hi"})
    assert json.loads(request["content"]) == {"prompt": "hi"}
    assert request["headers"]["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_invoke_returns_json_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"temp": 25})

    config = _config(query_params_template="q={{prompt}}")
    response = await _service(handler).invoke(config, {"prompt": "Osaka"})

    assert response.success is True
    assert response.data == {"temp": 25}
    assert response.status == 200
    assert seen["url"] == "https://api.example.com/v1/search?q=Osaka"


@pytest.mark.asyncio
async def test_invoke_applies_response_template():
    def handler(request):
        return httpx.Response(200, json={"main": {"temp": 25}, "weather": [{"description": "sunny"}]})

    config = _config(response_template="{{weather.0.description}}, {{main.temp}}C")
    response = await _service(handler).invoke(config, {})
    assert response.data == "sunny, 25C"


@pytest.mark.asyncio
async def test_invoke_reports_http_errors():
    def handler(request):
        return httpx.Response(503, text="maintenance")

    response = await _service(handler).invoke(_config(), {})
    assert response.success is False
    assert response.error == "HTTP 503: maintenance"
    assert response.status == 503


@pytest.mark.asyncio
async def test_invoke_reports_transport_errors():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    response = await _service(handler).invoke(_config(), {})
    assert response.success is False
    assert "refused" in response.error


@pytest.mark.asyncio
async def test_invoke_encodes_binary_image():
    def handler(request):
        return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})

    response = await _service(handler).invoke(_config(response_type="image"), {})
    assert response.success is True
    assert response.data == base64.b64encode(b"\x89PNG").decode("utf-8")


@pytest.mark.asyncio
async def test_invoke_reads_image_from_json_path():
    def handler(request):
        return httpx.Response(200, json={"data": [{"b64_json": "QUJD"}]})

    config = _config(response_type="image", image_data_path="data.0.b64_json")
    response = await _service(handler).invoke(config, {})
    assert response.data == "QUJD"


@pytest.mark.asyncio
async def test_invoke_missing_image_data_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"data": []})

    config = _config(response_type="image", image_data_path="data.0.b64_json")
    response = await _service(handler).invoke(config, {})
    assert response.success is False
    assert response.error == "Image data not found in response"

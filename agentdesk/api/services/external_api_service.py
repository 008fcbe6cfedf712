"""
External API invoker

Executes one HTTP call described by an ``APIConfig`` and a parameter bag.
Templates use ``{{name}}`` placeholders; inside request bodies string
values are JSON-escaped so that ``"{{prompt}}"`` stays valid JSON.
"""
import base64
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

import httpx

from ..config import settings
from ..models.assistant import APIConfig
from .service_contracts import ExternalAPIResponse, ParamBag

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.\-\[\]]+)\s*\}\}")


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, ensure_ascii=False)


def render_template(template: str, params: ParamBag) -> str:
    """Substitute ``{{name}}`` placeholders with plain string values."""
    return _PLACEHOLDER.sub(lambda m: _stringify(params.get(m.group(1), "")), template)


def render_json_template(template: str, params: ParamBag) -> str:
    """Substitute placeholders inside a JSON body.

    Strings are escaped without surrounding quotes so the template decides
    the quoting; other values are emitted as JSON literals.
    """
    def _replace(match: re.Match) -> str:
        value = params.get(match.group(1), "")
        if isinstance(value, str):
            return json.dumps(value, ensure_ascii=False)[1:-1]
        return json.dumps(value, ensure_ascii=False)

    return _PLACEHOLDER.sub(_replace, template)


def lookup_path(data: Any, path: str) -> Any:
    """Resolve a dot path such as ``data.0.b64_json`` or ``images[0].url``."""
    current = data
    for token in re.findall(r"[^.\[\]]+", path or ""):
        if isinstance(current, dict):
            current = current.get(token)
        elif isinstance(current, list) and token.isdigit():
            index = int(token)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


class ExternalAPIService:
    """httpx-backed external API invoker"""

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_seconds = (
            settings.external_api_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self._transport = transport

    def build_request(self, config: APIConfig, params: ParamBag) -> Dict[str, Any]:
        """Build keyword arguments for ``httpx.AsyncClient.request``."""
        headers = {key: render_template(value, params) for key, value in config.headers.items()}
        query: List[Tuple[str, str]] = []
        if config.query_params_template:
            template = config.query_params_template.lstrip("?")
            for key, value in parse_qsl(template, keep_blank_values=True):
                query.append((key, render_template(value, params)))

        auth = None
        auth_config = config.auth_config
        if auth_config is not None:
            if config.auth_type == "bearer" and auth_config.token:
                headers["Authorization"] = f"Bearer {auth_config.token}"
            elif config.auth_type == "basic" and auth_config.username:
                auth = httpx.BasicAuth(auth_config.username, auth_config.password or "")
            elif config.auth_type == "apiKey" and auth_config.key_name:
                if auth_config.in_header:
                    headers[auth_config.key_name] = auth_config.key_value or ""
                else:
                    query.append((auth_config.key_name, auth_config.key_value or ""))

        request: Dict[str, Any] = {
            "method": config.method,
            "url": render_template(config.endpoint, params),
            "headers": headers,
            "params": query,
        }
        if auth is not None:
            request["auth"] = auth
        if config.method != "GET" and config.body_template:
            request["content"] = render_json_template(config.body_template, params).encode("utf-8")
            headers.setdefault("Content-Type", "application/json")
        return request

    def _parse_response(self, config: APIConfig, response: httpx.Response) -> ExternalAPIResponse:
        status = response.status_code
        if not response.is_success:
            return ExternalAPIResponse(
                success=False,
                error=f"HTTP {status}: {response.text[:200]}",
                status=status,
            )

        content_type = response.headers.get("content-type", "")
        if config.response_type == "image" and content_type.startswith("image/"):
            return ExternalAPIResponse(
                success=True,
                data=base64.b64encode(response.content).decode("utf-8"),
                status=status,
            )

        try:
            payload: Any = response.json()
        except ValueError:
            payload = response.text

        if config.response_type == "image":
            image_data = lookup_path(payload, config.image_data_path) if config.image_data_path else payload
            if not isinstance(image_data, str) or not image_data:
                return ExternalAPIResponse(
                    success=False,
                    error="Image data not found in response",
                    status=status,
                )
            return ExternalAPIResponse(success=True, data=image_data, status=status)

        if config.response_template and not isinstance(payload, str):
            rendered = _PLACEHOLDER.sub(
                lambda m: _stringify(lookup_path(payload, m.group(1))),
                config.response_template,
            )
            return ExternalAPIResponse(success=True, data=rendered, status=status)

        return ExternalAPIResponse(success=True, data=payload, status=status)

    async def invoke(self, config: APIConfig, params: ParamBag) -> ExternalAPIResponse:
        """Execute the call; transport errors are reported, not raised."""
        request = self.build_request(config, params)
        logger.info(f"[ExternalAPI] {config.method} {request['url']} ({config.name})")
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.request(**request)
        except httpx.HTTPError as e:
            logger.error(f"[ExternalAPI] {config.name} failed: {e}")
            return ExternalAPIResponse(success=False, error=str(e) or e.__class__.__name__)

        return self._parse_response(config, response)

"""Completion provider integration.

Turns a ``CompletionRequest`` into the provider's chat-completions wire
format and performs the outbound call.
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import httpx
import structlog

from ..config import LLMSettings
from ..domain.completions import (
    CompletionRequest,
    ContentPart,
    InputMessage,
    NamedToolChoice,
    OutputSchema,
    Tool,
    ToolChoice,
)
from ..domain.errors import (
    CompletionProviderError,
    CompletionTransportError,
    ConfigurationError,
    InvalidCompletionRequest,
)

logger = structlog.get_logger()

DEFAULT_API_ORIGIN = "https://forge.manus.im"
COMPLETIONS_PATH = "/v1/chat/completions"
MODEL = "gemini-2.5-flash"
MAX_TOKENS = 32768
THINKING_BUDGET_TOKENS = 128

SUPPORTED_PART_TYPES = ("text", "image_url", "file_url")
TOOL_ROLES = ("tool", "function")


def _ensure_list(content: Any) -> List[Any]:
    return content if isinstance(content, list) else [content]


def normalize_content_part(part: ContentPart) -> Dict[str, Any]:
    """Promote bare strings to text parts and reject unknown part types."""
    if isinstance(part, str):
        return {"type": "text", "text": part}
    if isinstance(part, Mapping) and part.get("type") in SUPPORTED_PART_TYPES:
        if part["type"] == "text" and not isinstance(part.get("text"), str):
            raise InvalidCompletionRequest("Text content part requires a text string")
        return dict(part)
    raise InvalidCompletionRequest("Unsupported message content part")


def normalize_message(message: Union[InputMessage, Mapping[str, Any]]) -> Dict[str, Any]:
    """Convert one input message into the provider's message shape.

    Tool and function results are flattened to a single newline-joined
    string. Any other message whose content reduces to exactly one text
    part is sent as a bare string; otherwise the full part list is sent.
    """
    if not isinstance(message, InputMessage):
        message = InputMessage.model_validate(message)

    normalized: Dict[str, Any] = {"role": message.role}
    if message.name is not None:
        normalized["name"] = message.name

    if message.role in TOOL_ROLES:
        if message.tool_call_id is not None:
            normalized["tool_call_id"] = message.tool_call_id
        normalized["content"] = "\n".join(
            part if isinstance(part, str) else json.dumps(part, separators=(",", ":"), ensure_ascii=False)
            for part in _ensure_list(message.content)
        )
        return normalized

    parts = [normalize_content_part(part) for part in _ensure_list(message.content)]
    if len(parts) == 1 and parts[0]["type"] == "text":
        normalized["content"] = parts[0]["text"]
    else:
        normalized["content"] = parts
    return normalized


def normalize_tool_choice(
    tool_choice: Optional[ToolChoice],
    tools: Optional[Sequence[Tool]] = None,
) -> Optional[Union[str, Dict[str, Any]]]:
    """Map a symbolic tool choice onto the provider's representation."""
    if not tool_choice:
        return None
    if tool_choice in ("auto", "none"):
        return tool_choice
    if tool_choice == "required":
        if not tools:
            raise InvalidCompletionRequest(
                "tool_choice 'required' was provided but no tools were configured"
            )
        if len(tools) > 1:
            raise InvalidCompletionRequest(
                "tool_choice 'required' needs a single tool or specify the tool name explicitly"
            )
        return {"type": "function", "function": {"name": tools[0].function.name}}
    if isinstance(tool_choice, NamedToolChoice):
        return {"type": "function", "function": {"name": tool_choice.name}}
    if isinstance(tool_choice, Mapping) and "name" in tool_choice:
        return {"type": "function", "function": {"name": tool_choice["name"]}}
    # Unknown shapes go to the provider as-is.
    return tool_choice


def normalize_response_format(
    response_format: Optional[Mapping[str, Any]] = None,
    output_schema: Optional[OutputSchema] = None,
) -> Optional[Dict[str, Any]]:
    """Pick one structured-output directive from either caller convention.

    An explicit ``response_format`` always wins over the ``output_schema``
    shorthand.
    """
    if response_format:
        if response_format.get("type") == "json_schema":
            json_schema = response_format.get("json_schema")
            if not isinstance(json_schema, Mapping) or not json_schema.get("schema"):
                raise InvalidCompletionRequest(
                    "responseFormat json_schema requires a defined schema object"
                )
        return dict(response_format)

    if output_schema is None:
        return None
    if not output_schema.name or not output_schema.schema_:
        raise InvalidCompletionRequest("outputSchema requires both name and schema")

    json_schema: Dict[str, Any] = {"name": output_schema.name, "schema": output_schema.schema_}
    if isinstance(output_schema.strict, bool):
        json_schema["strict"] = output_schema.strict
    return {"type": "json_schema", "json_schema": json_schema}


def resolve_api_url(base_url: Optional[str]) -> str:
    """Build the completions endpoint from the configured base URL."""
    if base_url and base_url.strip():
        return f"{base_url.strip().rstrip('/')}{COMPLETIONS_PATH}"
    return f"{DEFAULT_API_ORIGIN}{COMPLETIONS_PATH}"


class LLMService:
    """Single-shot client for the chat-completions endpoint.

    One POST per call, no retries. Failures surface as typed exceptions;
    the parsed response body is returned untouched on success.
    """

    def __init__(self, settings: LLMSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = http_client or httpx.AsyncClient(timeout=settings.timeout)
        self.endpoint = resolve_api_url(settings.api_url)
        logger.info("llm_service_init", model=MODEL, endpoint=self.endpoint)

    def build_payload(self, request: CompletionRequest) -> Dict[str, Any]:
        """Assemble the JSON body for one completion call."""
        payload: Dict[str, Any] = {
            "model": MODEL,
            "messages": [normalize_message(message) for message in request.messages],
        }
        if request.tools:
            payload["tools"] = [tool.model_dump(exclude_none=True) for tool in request.tools]

        tool_choice = normalize_tool_choice(request.tool_choice, request.tools)
        if tool_choice:
            payload["tool_choice"] = tool_choice

        payload["max_tokens"] = MAX_TOKENS
        payload["thinking"] = {"budget_tokens": THINKING_BUDGET_TOKENS}

        response_format = normalize_response_format(request.response_format, request.output_schema)
        if response_format:
            payload["response_format"] = response_format
        return payload

    async def invoke(self, request: Union[CompletionRequest, Mapping[str, Any]]) -> Dict[str, Any]:
        """Send a completion request and return the provider's JSON response."""
        if not self.settings.api_key:
            raise ConfigurationError("BUILT_IN_FORGE_API_KEY is not configured")
        if not isinstance(request, CompletionRequest):
            request = CompletionRequest.model_validate(request)

        payload = self.build_payload(request)
        logger.debug(
            "completion_request",
            model=MODEL,
            message_count=len(payload["messages"]),
            has_tools="tools" in payload,
        )

        try:
            async with self._client.stream(
                "POST",
                self.endpoint,
                json=payload,
                headers={"authorization": f"Bearer {self.settings.api_key}"},
            ) as response:
                if not response.is_success:
                    try:
                        await response.aread()
                        body = response.text
                    except httpx.HTTPError:
                        body = ""
                    logger.error(
                        "completion_failed",
                        status_code=response.status_code,
                        reason=response.reason_phrase,
                    )
                    raise CompletionProviderError(response.status_code, response.reason_phrase, body)
                await response.aread()
        except httpx.HTTPError as e:
            logger.error("completion_transport_error", error=str(e))
            raise CompletionTransportError(f"LLM invoke failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            logger.error("completion_invalid_json", status_code=response.status_code)
            raise CompletionProviderError(
                response.status_code, response.reason_phrase, "response body is not valid JSON"
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()

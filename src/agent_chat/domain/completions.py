"""Canonical input types for completion requests.

Callers may hand over loosely shaped data (bare strings, single content
parts, camelCase option names). Everything is coerced into these models
once, when a ``CompletionRequest`` is built, so the normalizers in
``services.llm`` only deal with one representation per concept.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ContentPart = Union[str, Dict[str, Any]]
MessageContent = Union[str, Dict[str, Any], List[ContentPart]]
Role = Literal["system", "user", "assistant", "tool", "function"]


class InputMessage(BaseModel):
    """A single conversation entry before normalization."""

    role: Role
    content: MessageContent
    name: Optional[str] = None
    tool_call_id: Optional[str] = None


class ToolFunction(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None


class Tool(BaseModel):
    """A function the model may call."""

    model_config = ConfigDict(extra="allow")

    type: Literal["function"] = "function"
    function: ToolFunction


class NamedToolChoice(BaseModel):
    """Force the model to call one specific tool."""

    model_config = ConfigDict(extra="forbid")

    name: str


ToolChoice = Union[Literal["auto", "none", "required"], NamedToolChoice, Dict[str, Any]]


class OutputSchema(BaseModel):
    """Shorthand for a ``json_schema`` response format."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    schema_: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    strict: Optional[bool] = None


class CompletionRequest(BaseModel):
    """Everything the caller controls about one completion call."""

    model_config = ConfigDict(populate_by_name=True)

    messages: List[InputMessage]
    tools: Optional[List[Tool]] = None
    tool_choice: Optional[ToolChoice] = Field(
        default=None,
        validation_alias=AliasChoices("tool_choice", "toolChoice"),
        union_mode="left_to_right",
    )
    response_format: Optional[Dict[str, Any]] = Field(
        default=None,
        validation_alias=AliasChoices("response_format", "responseFormat"),
    )
    output_schema: Optional[OutputSchema] = Field(
        default=None,
        validation_alias=AliasChoices("output_schema", "outputSchema"),
    )

"""Domain models for agents, clients and their chat log."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentStatus(str, Enum):
    """Operational status of an agent."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class MessageRole(str, Enum):
    """Which side of the conversation wrote a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Agent(BaseModel):
    """A configured chatbot owned by one business."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    business_id: int
    name: str
    system_prompt: Optional[str] = None
    welcome_message: Optional[str] = None
    status: AgentStatus = AgentStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Client(BaseModel):
    """The human party talking to an agent."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    agent_id: int
    business_id: int
    name: str
    email: Optional[str] = None
    last_interaction_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class ChatMessage(BaseModel):
    """One side of one turn. Append-only."""

    model_config = ConfigDict(from_attributes=True, alias_generator=AliasGenerator(serialization_alias=to_camel))

    id: int
    agent_id: int
    client_id: int
    role: MessageRole
    content: str
    created_at: datetime = Field(default_factory=utcnow)


class ChatTurn(BaseModel):
    """Result of a completed turn as returned to the UI."""

    model_config = ConfigDict(alias_generator=AliasGenerator(serialization_alias=to_camel))

    user_message: str
    assistant_message: str

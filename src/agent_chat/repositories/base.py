"""Base repository interfaces."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..domain.models import Agent, ChatMessage, Client, MessageRole


class ConversationStore(ABC):
    """Append-only chat log keyed by (agent, client)."""

    @abstractmethod
    async def append_message(
        self, agent_id: int, client_id: int, role: MessageRole, content: str
    ) -> ChatMessage:
        """Store one message and return it with its id and timestamp."""
        pass

    @abstractmethod
    async def get_recent_history(
        self,
        agent_id: int,
        client_id: int,
        limit: int,
        before_id: Optional[int] = None,
    ) -> List[ChatMessage]:
        """Return the ``limit`` most recent messages, oldest first.

        When ``before_id`` is given only messages stored before it count.
        """
        pass

    @abstractmethod
    async def get_history(self, agent_id: int, client_id: int, limit: int = 50) -> List[ChatMessage]:
        """Return up to ``limit`` messages from the start of the conversation."""
        pass


class AgentDirectory(ABC):
    """Read access to agent configuration."""

    @abstractmethod
    async def get_agent(self, agent_id: int) -> Optional[Agent]:
        """Retrieve an agent by ID."""
        pass


class ClientDirectory(ABC):
    """Client records touched by chat turns."""

    @abstractmethod
    async def get_client(self, client_id: int) -> Optional[Client]:
        """Retrieve a client by ID."""
        pass

    @abstractmethod
    async def touch_client(self, client_id: int, timestamp: datetime) -> None:
        """Set the client's last-interaction timestamp."""
        pass


class Repository(ConversationStore, AgentDirectory, ClientDirectory):
    """Full store used by the application, including seeding helpers."""

    @abstractmethod
    async def create_agent(
        self,
        business_id: int,
        name: str,
        system_prompt: Optional[str] = None,
        welcome_message: Optional[str] = None,
    ) -> Agent:
        """Create an agent."""
        pass

    @abstractmethod
    async def create_client(self, agent_id: int, business_id: int, name: str, email: Optional[str] = None) -> Client:
        """Create a client for an agent."""
        pass

    async def initialize(self) -> None:
        """Prepare backing storage. No-op by default."""

    async def close(self) -> None:
        """Release backing storage. No-op by default."""

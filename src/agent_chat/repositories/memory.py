"""In-memory repository implementation."""

import asyncio
import itertools
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from ..domain.models import Agent, ChatMessage, Client, MessageRole
from .base import Repository

logger = structlog.get_logger()


class InMemoryRepository(Repository):
    """Process-local repository guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._agents: Dict[int, Agent] = {}
        self._clients: Dict[int, Client] = {}
        self._messages: List[ChatMessage] = []
        self._agent_ids = itertools.count(1)
        self._client_ids = itertools.count(1)
        self._message_ids = itertools.count(1)
        self._lock = asyncio.Lock()
        logger.info("repository_initialized", backend="memory")

    async def create_agent(
        self,
        business_id: int,
        name: str,
        system_prompt: Optional[str] = None,
        welcome_message: Optional[str] = None,
    ) -> Agent:
        async with self._lock:
            agent = Agent(
                id=next(self._agent_ids),
                business_id=business_id,
                name=name,
                system_prompt=system_prompt,
                welcome_message=welcome_message,
            )
            self._agents[agent.id] = agent
            logger.info("agent_created", agent_id=agent.id)
            return agent

    async def get_agent(self, agent_id: int) -> Optional[Agent]:
        async with self._lock:
            return self._agents.get(agent_id)

    async def create_client(self, agent_id: int, business_id: int, name: str, email: Optional[str] = None) -> Client:
        async with self._lock:
            client = Client(
                id=next(self._client_ids),
                agent_id=agent_id,
                business_id=business_id,
                name=name,
                email=email,
            )
            self._clients[client.id] = client
            logger.info("client_created", client_id=client.id, agent_id=agent_id)
            return client

    async def get_client(self, client_id: int) -> Optional[Client]:
        async with self._lock:
            return self._clients.get(client_id)

    async def touch_client(self, client_id: int, timestamp: datetime) -> None:
        async with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                logger.warning("client_not_found", client_id=client_id)
                return
            self._clients[client_id] = client.model_copy(update={"last_interaction_at": timestamp})

    async def append_message(
        self, agent_id: int, client_id: int, role: MessageRole, content: str
    ) -> ChatMessage:
        async with self._lock:
            message = ChatMessage(
                id=next(self._message_ids),
                agent_id=agent_id,
                client_id=client_id,
                role=role,
                content=content,
            )
            self._messages.append(message)
            logger.info("message_added", agent_id=agent_id, client_id=client_id, message_role=role.value)
            return message

    def _conversation(self, agent_id: int, client_id: int) -> List[ChatMessage]:
        messages = [m for m in self._messages if m.agent_id == agent_id and m.client_id == client_id]
        return sorted(messages, key=lambda m: (m.created_at, m.id))

    async def get_recent_history(
        self,
        agent_id: int,
        client_id: int,
        limit: int,
        before_id: Optional[int] = None,
    ) -> List[ChatMessage]:
        if limit <= 0:
            return []
        async with self._lock:
            messages = self._conversation(agent_id, client_id)
            if before_id is not None:
                messages = [m for m in messages if m.id < before_id]
            return messages[-limit:]

    async def get_history(self, agent_id: int, client_id: int, limit: int = 50) -> List[ChatMessage]:
        async with self._lock:
            return self._conversation(agent_id, client_id)[:limit]

"""Relational repository implementation on SQLAlchemy's async engine."""

from datetime import datetime, timezone
from typing import List, Optional

import structlog
from sqlalchemy import Column, DateTime, Index, Integer, String, Text, TypeDecorator, select, update
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from ..domain.models import Agent, AgentStatus, ChatMessage, Client, MessageRole, utcnow
from .base import Repository

logger = structlog.get_logger()
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timestamp column that always loads as UTC-aware.

    SQLite keeps no offset, so naive values read back are taken to be UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class AgentModel(Base):
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    system_prompt = Column(Text, nullable=True)
    welcome_message = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default=AgentStatus.ACTIVE.value)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)


class ClientModel(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    agent_id = Column(Integer, nullable=False, index=True)
    business_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(320), nullable=True)
    last_interaction_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)


class ChatMessageModel(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    agent_id = Column(Integer, nullable=False)
    client_id = Column(Integer, nullable=False)
    role = Column(String(16), nullable=False)  # user | assistant | system
    content = Column(Text, nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (Index("idx_chat_messages_conversation", "agent_id", "client_id", "created_at"),)


class SqlRepository(Repository):
    """Repository backed by any SQLAlchemy async database URL."""

    def __init__(self, uri: str):
        self.engine = create_async_engine(uri)
        self.async_session = sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("repository_initialized", backend="sql", dialect=self.engine.dialect.name)

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("repository_closed", backend="sql")

    async def create_agent(
        self,
        business_id: int,
        name: str,
        system_prompt: Optional[str] = None,
        welcome_message: Optional[str] = None,
    ) -> Agent:
        now = utcnow()
        row = AgentModel(
            business_id=business_id,
            name=name,
            system_prompt=system_prompt,
            welcome_message=welcome_message,
            status=AgentStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        async with self.async_session() as session:
            session.add(row)
            await session.commit()
        logger.info("agent_created", agent_id=row.id)
        return Agent.model_validate(row)

    async def get_agent(self, agent_id: int) -> Optional[Agent]:
        async with self.async_session() as session:
            row = await session.get(AgentModel, agent_id)
            return Agent.model_validate(row) if row else None

    async def create_client(self, agent_id: int, business_id: int, name: str, email: Optional[str] = None) -> Client:
        row = ClientModel(
            agent_id=agent_id, business_id=business_id, name=name, email=email, created_at=utcnow()
        )
        async with self.async_session() as session:
            session.add(row)
            await session.commit()
        logger.info("client_created", client_id=row.id, agent_id=agent_id)
        return Client.model_validate(row)

    async def get_client(self, client_id: int) -> Optional[Client]:
        async with self.async_session() as session:
            row = await session.get(ClientModel, client_id)
            return Client.model_validate(row) if row else None

    async def touch_client(self, client_id: int, timestamp: datetime) -> None:
        async with self.async_session() as session:
            result = await session.execute(
                update(ClientModel).where(ClientModel.id == client_id).values(last_interaction_at=timestamp)
            )
            await session.commit()
        if result.rowcount == 0:
            logger.warning("client_not_found", client_id=client_id)

    async def append_message(
        self, agent_id: int, client_id: int, role: MessageRole, content: str
    ) -> ChatMessage:
        row = ChatMessageModel(
            agent_id=agent_id, client_id=client_id, role=role.value, content=content, created_at=utcnow()
        )
        async with self.async_session() as session:
            session.add(row)
            await session.commit()
        logger.info("message_added", agent_id=agent_id, client_id=client_id, message_role=role.value)
        return ChatMessage.model_validate(row)

    async def get_recent_history(
        self,
        agent_id: int,
        client_id: int,
        limit: int,
        before_id: Optional[int] = None,
    ) -> List[ChatMessage]:
        if limit <= 0:
            return []
        query = select(ChatMessageModel).where(
            ChatMessageModel.agent_id == agent_id,
            ChatMessageModel.client_id == client_id,
        )
        if before_id is not None:
            query = query.where(ChatMessageModel.id < before_id)
        query = query.order_by(ChatMessageModel.created_at.desc(), ChatMessageModel.id.desc()).limit(limit)

        async with self.async_session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [ChatMessage.model_validate(row) for row in reversed(rows)]

    async def get_history(self, agent_id: int, client_id: int, limit: int = 50) -> List[ChatMessage]:
        query = (
            select(ChatMessageModel)
            .where(ChatMessageModel.agent_id == agent_id, ChatMessageModel.client_id == client_id)
            .order_by(ChatMessageModel.created_at.asc(), ChatMessageModel.id.asc())
            .limit(limit)
        )
        async with self.async_session() as session:
            rows = (await session.execute(query)).scalars().all()
        return [ChatMessage.model_validate(row) for row in rows]

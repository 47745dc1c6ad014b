"""
FastAPI Application Module

HTTP surface for agent chat. The UI sends one user message per call and
gets back the agent's reply; stored history can be listed per
(agent, client) pair.

Collaborators (repository, completion client, chat service) are built once
in ``create_app`` and kept on ``app.state``.
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from structlog import get_logger

from ..config import Settings, load_settings
from ..domain.errors import (
    AgentNotFoundError,
    ChatError,
    CompletionError,
    InvalidCompletionRequest,
)
from ..domain.models import ChatMessage, ChatTurn
from ..log import setup_logging
from ..repositories.base import Repository
from ..repositories.sql import SqlRepository
from ..services.chat import ChatService
from ..services.llm import LLMService

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total failed HTTP requests", registry=CUSTOM_REGISTRY)
CHAT_TURNS = Counter("chat_turns_total", "Chat turns by outcome", ["outcome"], registry=CUSTOM_REGISTRY)

logger = get_logger()


class SendMessageRequest(BaseModel):
    """Body of a send-message call."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    agent_id: int
    client_id: int
    message: str = Field(min_length=1)


def get_chat_service(request: Request) -> ChatService:
    """Returns the chat turn orchestrator"""
    return request.app.state.chat_service


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[Repository] = None,
    llm_service: Optional[LLMService] = None,
) -> FastAPI:
    """Build the application and its collaborators."""
    settings = settings or load_settings()
    repository = repository or SqlRepository(settings.database_url)
    llm_service = llm_service or LLMService(settings.llm)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Opens storage on startup and releases it with the HTTP client on shutdown"""
        setup_logging(settings.log_level, settings.log_json)
        await repository.initialize()
        logger.info("application_startup_complete")

        yield

        await llm_service.aclose()
        await repository.close()
        logger.info("application_shutdown_complete")

    app = FastAPI(
        title="Agent Chat API",
        description="Chat turns between business clients and configured AI agents",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.repository = repository
    app.state.chat_service = ChatService(
        conversations=repository,
        agents=repository,
        clients=repository,
        llm=llm_service,
        history_window=settings.history_window,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Counts and logs every request"""
        REQUESTS.inc()
        logger.info("request_started", path=request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            ERRORS.inc()
            logger.error("request_failed", path=request.url.path, error=str(e))
            raise
        if response.status_code >= 400:
            ERRORS.inc()
        return response

    @app.post("/chat/messages", response_model=ChatTurn)
    async def send_message(
        body: SendMessageRequest,
        chat_service: ChatService = Depends(get_chat_service),
    ) -> ChatTurn:
        """Stores the user's message and returns the agent's reply"""
        try:
            turn = await chat_service.send_message(body.agent_id, body.client_id, body.message)
        except InvalidCompletionRequest as e:
            CHAT_TURNS.labels(outcome="invalid").inc()
            raise HTTPException(status_code=400, detail=str(e))
        except AgentNotFoundError as e:
            CHAT_TURNS.labels(outcome="agent_not_found").inc()
            raise HTTPException(status_code=404, detail=str(e))
        except CompletionError as e:
            CHAT_TURNS.labels(outcome="provider_error").inc()
            raise HTTPException(status_code=502, detail=str(e))
        except ChatError as e:
            CHAT_TURNS.labels(outcome="error").inc()
            raise HTTPException(status_code=500, detail=str(e))
        except Exception as e:
            CHAT_TURNS.labels(outcome="error").inc()
            logger.error("send_message_error", agent_id=body.agent_id, client_id=body.client_id, error=str(e))
            raise HTTPException(status_code=500, detail="Failed to process message")

        CHAT_TURNS.labels(outcome="completed").inc()
        return turn

    @app.get("/agents/{agent_id}/clients/{client_id}/messages", response_model=List[ChatMessage])
    async def get_history(
        agent_id: int,
        client_id: int,
        limit: int = Query(50, ge=1, le=500),
        chat_service: ChatService = Depends(get_chat_service),
    ) -> List[ChatMessage]:
        """Gets stored messages for an agent/client pair, oldest first"""
        try:
            return await chat_service.get_history(agent_id, client_id, limit)
        except Exception as e:
            logger.error("get_history_error", agent_id=agent_id, client_id=client_id, error=str(e))
            raise HTTPException(status_code=500, detail="Failed to get messages")

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    return app

"""Chat turn orchestration.

A turn stores the user's message, builds a bounded prompt from the agent's
configuration and prior messages, asks the completion provider for a
reply, then records the reply and the client's last interaction.

Steps are strictly sequential and nothing is rolled back: if the agent is
missing or the provider call fails, the user's message stays stored with
no assistant reply next to it.
"""

from typing import Any, List, Mapping, Optional

import structlog

from ..domain.completions import CompletionRequest, InputMessage
from ..domain.errors import AgentNotFoundError, InvalidCompletionRequest
from ..domain.models import Agent, ChatMessage, ChatTurn, MessageRole, utcnow
from ..repositories.base import AgentDirectory, ClientDirectory, ConversationStore
from .llm import LLMService

logger = structlog.get_logger()

HISTORY_WINDOW = 20
DEFAULT_SYSTEM_PROMPT = "You are a helpful customer service assistant."
FALLBACK_REPLY = "I apologize, I could not generate a response."


def build_conversation(agent: Agent, history: List[ChatMessage], message: str) -> List[InputMessage]:
    """System prompt, then prior messages verbatim, then the new user message."""
    conversation = [InputMessage(role="system", content=agent.system_prompt or DEFAULT_SYSTEM_PROMPT)]
    conversation.extend(InputMessage(role=m.role.value, content=m.content) for m in history)
    conversation.append(InputMessage(role="user", content=message))
    return conversation


def extract_reply(response: Any) -> Optional[str]:
    """Pull the first choice's text out of a completion response, if it is text."""
    if not isinstance(response, Mapping):
        return None
    choices = response.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, Mapping) else None
    content = message.get("content") if isinstance(message, Mapping) else None
    return content if isinstance(content, str) else None


class ChatService:
    """Runs chat turns against injected stores and a completion client."""

    def __init__(
        self,
        conversations: ConversationStore,
        agents: AgentDirectory,
        clients: ClientDirectory,
        llm: LLMService,
        history_window: int = HISTORY_WINDOW,
    ):
        self.conversations = conversations
        self.agents = agents
        self.clients = clients
        self.llm = llm
        self.history_window = history_window

    async def send_message(self, agent_id: int, client_id: int, message: str) -> ChatTurn:
        """Run one turn and return both sides of the exchange."""
        if not message:
            raise InvalidCompletionRequest("message must not be empty")

        log = logger.bind(agent_id=agent_id, client_id=client_id)
        log.info("chat_turn_started", message_length=len(message))

        stored = await self.conversations.append_message(agent_id, client_id, MessageRole.USER, message)

        agent = await self.agents.get_agent(agent_id)
        if agent is None:
            log.warning("agent_not_found", user_message_id=stored.id)
            raise AgentNotFoundError(agent_id)

        history = await self.conversations.get_recent_history(
            agent_id, client_id, self.history_window, before_id=stored.id
        )
        request = CompletionRequest(messages=build_conversation(agent, history, message))
        response = await self.llm.invoke(request)

        reply = extract_reply(response)
        if reply is None:
            log.warning("assistant_reply_fallback")
            reply = FALLBACK_REPLY

        await self.conversations.append_message(agent_id, client_id, MessageRole.ASSISTANT, reply)
        await self.clients.touch_client(client_id, utcnow())

        log.info("chat_turn_completed", history_length=len(history), reply_length=len(reply))
        return ChatTurn(user_message=message, assistant_message=reply)

    async def get_history(self, agent_id: int, client_id: int, limit: int = 50) -> List[ChatMessage]:
        """Stored messages for the pair, oldest first."""
        return await self.conversations.get_history(agent_id, client_id, limit)

"""Exception hierarchy for the chat turn workflow."""

from typing import Optional


class ChatError(Exception):
    """Base exception for chat and completion failures."""

    pass


class ConfigurationError(ChatError):
    """Required configuration (e.g. provider API key) is missing."""

    pass


class InvalidCompletionRequest(ChatError, ValueError):
    """Caller supplied a request shape the provider cannot accept."""

    pass


class AgentNotFoundError(ChatError):
    """No agent exists with the requested identifier."""

    def __init__(self, agent_id: int):
        super().__init__("Agent not found")
        self.agent_id = agent_id


class CompletionError(ChatError):
    """The completion provider call did not produce a usable response."""

    pass


class CompletionProviderError(CompletionError):
    """Provider answered with a non-2xx status or an unparsable body."""

    def __init__(self, status_code: int, status_text: str = "", body: Optional[str] = None):
        message = f"LLM invoke failed: {status_code} {status_text}".rstrip()
        if body:
            message = f"{message} - {body}"
        super().__init__(message)
        self.status_code = status_code
        self.status_text = status_text
        self.body = body


class CompletionTransportError(CompletionError):
    """The request never reached the provider or the connection broke."""

    pass

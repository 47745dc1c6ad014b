"""Shared fixtures: an in-memory store and a fake completion provider."""

import json

import httpx
import pytest

from agent_chat.config import LLMSettings
from agent_chat.repositories.memory import InMemoryRepository
from agent_chat.services.chat import ChatService
from agent_chat.services.llm import LLMService


def completion(content):
    """A provider response whose first choice carries ``content``."""
    return {
        "id": "cmpl-test",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
    }


class FakeProvider:
    """Records outbound requests and answers with a canned response."""

    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self.body = body
        self.text = text
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def payloads(self):
        return [json.loads(request.content) for request in self.requests]

    @property
    def last_payload(self):
        return self.payloads[-1]


@pytest.fixture
def provider():
    return FakeProvider(body=completion("Happy to help!"))


@pytest.fixture
def llm_settings():
    return LLMSettings(api_url="https://llm.example.com", api_key="test-key")


@pytest.fixture
def llm_service(provider, llm_settings):
    client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
    return LLMService(llm_settings, http_client=client)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def chat_service(repository, llm_service):
    return ChatService(
        conversations=repository,
        agents=repository,
        clients=repository,
        llm=llm_service,
    )

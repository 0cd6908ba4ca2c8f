import os

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# No external API keys or FHIR calls for tests
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["LLM_PROVIDER"] = "auto"
os.environ["LLM_FILTERING"] = "true"
os.environ["USE_TEST_PATIENT"] = "false"

from intake.main import app
from intake.services import llm as llm_mod
from intake.services.llm import ToolCall
from intake.store import close_store, get_store

from fake_llm import FakeLLMClient


@pytest.fixture
def fake_llm(monkeypatch):
    """Install a FakeLLMClient as the process-wide LLM client."""

    def _install(rounds: list[list] | None = None, error: Exception | None = None) -> FakeLLMClient:
        fake = FakeLLMClient(rounds, error)
        monkeypatch.setattr(llm_mod, "_client", fake)
        return fake

    return _install


@pytest.fixture
def tool_call():
    def _make(name: str, arguments: str, call_id: str = "call_1") -> ToolCall:
        return ToolCall(id=call_id, name=name, arguments=arguments)

    return _make


@pytest.fixture
def store():
    """Provide a fresh in-memory intake store for each test."""
    close_store()
    yield get_store()
    close_store()


@pytest.fixture
def client(store):
    """Provide a synchronous TestClient sharing one event loop for HTTP and WebSocket."""
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def async_client(store):
    """Provide an async httpx client for async HTTP tests."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

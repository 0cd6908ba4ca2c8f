"""Tests for the LLM client, chat sessions and callable functions (intake/services/llm.py)."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from pydantic import BaseModel

from intake.services.llm import (
    ChatEntity,
    ChatSession,
    LLMClient,
    LLMError,
    LLMFunction,
    LLMTransportError,
    LLMUnavailableError,
    ToolCall,
    _anthropic_messages,
    _openai_message,
)
from fake_llm import FakeLLMClient


class EchoArguments(BaseModel):
    text: str


class EchoFunction(LLMFunction):
    name = "echo"
    description = "Echo the text back."
    parameters = EchoArguments

    def __init__(self) -> None:
        self.received: list[str] = []

    async def execute(self, arguments: EchoArguments) -> str | None:
        self.received.append(arguments.text)
        return f"echoed {arguments.text}"


class SilentFunction(LLMFunction):
    name = "silent"
    description = "Does something and returns nothing."

    async def execute(self, arguments) -> str | None:
        return None


async def _aiter(items):
    for item in items:
        yield item


class TestBackendDetection:
    def test_dummy_without_keys(self):
        client = LLMClient()
        assert client.provider == "dummy"
        assert client.available() is False

    async def test_stream_unavailable_raises(self):
        client = LLMClient()
        with pytest.raises(LLMUnavailableError):
            async for _ in client.stream([ChatEntity(role="user", content="hi")]):
                pass

    def test_model_for_tier_defaults(self):
        client = LLMClient()
        client.provider = "anthropic"
        assert client.model_for_tier("fast") == "claude-3-haiku-20240307"
        client.provider = "openai"
        assert client.model_for_tier("standard") == "gpt-4o"
        assert client.model_for_tier("bogus") == "gpt-4o"


class TestMessageConversion:
    def test_openai_plain_message(self):
        assert _openai_message(ChatEntity(role="user", content="hi")) == {"role": "user", "content": "hi"}

    def test_openai_tool_call_and_result(self):
        call = ToolCall(id="c1", name="echo", arguments='{"text": "x"}')
        assistant = _openai_message(ChatEntity(role="assistant", tool_calls=[call]))
        assert assistant["content"] is None
        assert assistant["tool_calls"][0]["function"] == {"name": "echo", "arguments": '{"text": "x"}'}

        tool = _openai_message(ChatEntity(role="tool", content="done", tool_call_id="c1"))
        assert tool == {"role": "tool", "tool_call_id": "c1", "content": "done"}

    def test_anthropic_skips_system_and_leading_assistant(self):
        context = [
            ChatEntity(role="assistant", content="Do you have any questions about your allergies?"),
            ChatEntity(role="system", content="Pretend you are a nurse."),
            ChatEntity(role="user", content="I am allergic to cats"),
        ]
        messages = _anthropic_messages(context)
        assert messages == [{"role": "user", "content": [{"type": "text", "text": "I am allergic to cats"}]}]

    def test_anthropic_tool_round_trip_blocks(self):
        call = ToolCall(id="t1", name="echo", arguments='{"text": "x"}')
        context = [
            ChatEntity(role="user", content="go"),
            ChatEntity(role="assistant", content="Sure.", tool_calls=[call]),
            ChatEntity(role="tool", content="echoed x", tool_call_id="t1"),
        ]
        messages = _anthropic_messages(context)
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[1]["content"][1] == {"type": "tool_use", "id": "t1", "name": "echo", "input": {"text": "x"}}
        assert messages[2]["content"][0]["type"] == "tool_result"
        assert messages[2]["content"][0]["tool_use_id"] == "t1"


class TestLLMFunction:
    def test_json_schema(self):
        schema = EchoFunction().json_schema()
        assert schema["type"] == "object"
        assert "text" in schema["properties"]
        assert "title" not in schema

    def test_json_schema_without_parameters(self):
        assert SilentFunction().json_schema() == {"type": "object", "properties": {}}

    async def test_invoke_valid(self):
        fn = EchoFunction()
        assert await fn.invoke('{"text": "hello"}') == "echoed hello"
        assert fn.received == ["hello"]

    async def test_invoke_invalid_json(self):
        fn = EchoFunction()
        result = await fn.invoke("{not json")
        assert result.startswith("Invalid arguments for echo")
        assert fn.received == []

    async def test_invoke_missing_field(self):
        fn = EchoFunction()
        result = await fn.invoke("{}")
        assert result.startswith("Invalid arguments for echo")

    async def test_invoke_none_result(self):
        assert await SilentFunction().invoke("") == "Function executed."


class TestChatSession:
    def test_context_operations(self):
        session = ChatSession("system prompt", client=FakeLLMClient())
        session.append_user("hello")
        session.insert_assistant("greeting", index=0)
        assert [e.role for e in session.context] == ["assistant", "system", "user"]
        assert [e.content for e in session.transcript()] == ["greeting", "hello"]

    async def test_generate_streams_tokens(self):
        fake = FakeLLMClient([["Hel", "lo"]])
        session = ChatSession("sys", client=fake)
        session.append_user("hi")

        tokens = [t async for t in session.generate()]

        assert tokens == ["Hel", "lo"]
        assert session.context[-1] == ChatEntity(role="assistant", content="Hello")

    async def test_function_call_round(self, tool_call):
        fn = EchoFunction()
        fake = FakeLLMClient([
            [tool_call("echo", json.dumps({"text": "ping"}))],
            ["All ", "done"],
        ])
        session = ChatSession("sys", [fn], client=fake)
        session.append_user("please echo ping")

        reply = await session.complete()

        assert reply == "All done"
        assert fn.received == ["ping"]
        roles = [e.role for e in session.context]
        assert roles == ["system", "user", "assistant", "tool", "assistant"]
        assert session.context[3].content == "echoed ping"
        assert session.context[3].tool_call_id == "call_1"
        # second round sees the function result
        assert fake.contexts[1][-1].role == "tool"

    async def test_unknown_function(self, tool_call):
        fake = FakeLLMClient([[tool_call("missing", "{}")], ["ok"]])
        session = ChatSession("sys", client=fake)
        session.append_user("x")
        assert await session.complete() == "ok"
        assert session.context[-2].content == "Unknown function missing"

    async def test_function_round_limit(self, tool_call, monkeypatch):
        from intake.services import llm as llm_mod

        monkeypatch.setattr(llm_mod, "LLM_MAX_FUNCTION_ROUNDS", 1)
        fake = FakeLLMClient([
            [tool_call("silent", "{}", "a")],
            [tool_call("silent", "{}", "b")],
        ])
        session = ChatSession("sys", [SilentFunction()], client=fake)
        session.append_user("loop")
        with pytest.raises(LLMError, match="limit"):
            await session.complete()


class TestOpenAIPath:
    async def test_stream_text_and_tool_calls(self):
        chunks = [
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="Hi", tool_calls=None))]),
            SimpleNamespace(choices=[]),
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=[
                SimpleNamespace(index=0, id="call_9", function=SimpleNamespace(name="echo", arguments='{"te')),
            ]))]),
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=[
                SimpleNamespace(index=0, id=None, function=SimpleNamespace(name=None, arguments='xt": "a"}')),
            ]))]),
        ]
        mock_openai = MagicMock()
        mock_openai.chat.completions.create = AsyncMock(return_value=_aiter(chunks))

        client = LLMClient()
        client.provider = "openai"
        client._openai = mock_openai

        items = [i async for i in client.stream([ChatEntity(role="user", content="x")], [EchoFunction()])]

        assert items[0] == "Hi"
        assert items[1] == ToolCall(id="call_9", name="echo", arguments='{"text": "a"}')
        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["tools"][0]["function"]["name"] == "echo"

    async def test_transport_error_wrapped(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_openai = MagicMock()
        mock_openai.chat.completions.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=request),
        )
        client = LLMClient()
        client.provider = "openai"
        client._openai = mock_openai

        with pytest.raises(LLMTransportError):
            async for _ in client.stream([ChatEntity(role="user", content="x")]):
                pass


class _FakeAnthropicStream:
    def __init__(self, texts, final_content):
        self._texts = texts
        self._final = SimpleNamespace(content=final_content)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    @property
    def text_stream(self):
        return _aiter(self._texts)

    async def get_final_message(self):
        return self._final


class TestAnthropicPath:
    async def test_stream_text_and_tool_use(self):
        tool_block = SimpleNamespace(type="tool_use", id="tu_1", name="echo", input={"text": "b"})
        text_block = SimpleNamespace(type="text", text="Sure")
        mock_anthropic = MagicMock()
        mock_anthropic.messages.stream = MagicMock(
            return_value=_FakeAnthropicStream(["Su", "re"], [text_block, tool_block]),
        )

        client = LLMClient()
        client.provider = "anthropic"
        client._anthropic = mock_anthropic

        context = [
            ChatEntity(role="system", content="Pretend you are a nurse."),
            ChatEntity(role="user", content="hello"),
        ]
        items = [i async for i in client.stream(context, [EchoFunction()], tier="fast")]

        assert items[:2] == ["Su", "re"]
        assert items[2] == ToolCall(id="tu_1", name="echo", arguments='{"text": "b"}')
        kwargs = mock_anthropic.messages.stream.call_args.kwargs
        assert kwargs["system"] == "Pretend you are a nurse."
        assert kwargs["model"] == "claude-3-haiku-20240307"
        assert kwargs["tools"][0]["input_schema"]["properties"]["text"]["type"] == "string"

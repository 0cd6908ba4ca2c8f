import json
import logging
from collections.abc import AsyncIterator, Sequence

import anthropic
import httpx
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from intake.config import (
    ANTHROPIC_API_KEY,
    LLM_DEFAULT_TIER,
    LLM_MAX_FUNCTION_ROUNDS,
    LLM_MAX_TOKENS,
    LLM_MODEL_FAST,
    LLM_MODEL_HIGH,
    LLM_MODEL_STANDARD,
    LLM_PROVIDER,
    OPENAI_API_KEY,
)

logger = logging.getLogger(__name__)


_ANTHROPIC_DEFAULTS = {
    "fast": "claude-3-haiku-20240307",
    "standard": "claude-3-5-sonnet-20240620",
    "high": "claude-3-5-sonnet-20240620",
}

_OPENAI_DEFAULTS = {
    "fast": "gpt-4o-mini",
    "standard": "gpt-4o",
    "high": "gpt-4o",
}


class LLMError(Exception):
    """Base class for failures talking to the hosted model."""


class LLMUnavailableError(LLMError):
    """No provider is configured (missing API key)."""


class LLMTransportError(LLMError):
    """The provider request failed or the stream was cut off."""


class LLMEmptyResponseError(LLMError):
    """The provider answered with no usable text."""


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str = ""


class ChatEntity(BaseModel):
    role: str
    content: str = ""
    tool_calls: list[ToolCall] = []
    tool_call_id: str | None = None


class LLMFunction:
    """A capability the model may call with structured arguments.

    Subclasses set ``name``, ``description`` and ``parameters`` (a pydantic
    model describing the arguments) and implement ``execute``.
    """

    name: str = ""
    description: str = ""
    parameters: type[BaseModel] | None = None

    def json_schema(self) -> dict:
        if self.parameters is None:
            return {"type": "object", "properties": {}}
        schema = self.parameters.model_json_schema()
        schema.pop("title", None)
        return schema

    async def execute(self, arguments: BaseModel | None) -> str | None:  # pragma: no cover - interface
        raise NotImplementedError

    async def invoke(self, raw_arguments: str) -> str:
        try:
            payload = json.loads(raw_arguments or "{}")
            arguments = self.parameters.model_validate(payload) if self.parameters else None
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Invalid arguments for function %s: %s", self.name, exc)
            return f"Invalid arguments for {self.name}: {exc}"

        result = await self.execute(arguments)
        return result if result is not None else "Function executed."


def _safe_json(text: str) -> dict:
    try:
        value = json.loads(text or "{}")
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def _openai_message(entity: ChatEntity) -> dict:
    if entity.role == "tool":
        return {"role": "tool", "tool_call_id": entity.tool_call_id, "content": entity.content}
    if entity.role == "assistant" and entity.tool_calls:
        return {
            "role": "assistant",
            "content": entity.content or None,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments or "{}"},
                }
                for call in entity.tool_calls
            ],
        }
    return {"role": entity.role, "content": entity.content}


def _anthropic_messages(context: Sequence[ChatEntity]) -> list[dict]:
    messages: list[dict] = []
    for entity in context:
        if entity.role == "system":
            continue
        if entity.role == "assistant" and not messages:
            # Anthropic conversations must open with a user turn
            continue

        if entity.role == "tool":
            role = "user"
            blocks = [{
                "type": "tool_result",
                "tool_use_id": entity.tool_call_id,
                "content": entity.content,
            }]
        else:
            role = entity.role
            blocks = [{"type": "text", "text": entity.content}] if entity.content else []
            for call in entity.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": _safe_json(call.arguments),
                })

        if not blocks:
            continue
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].extend(blocks)
        else:
            messages.append({"role": role, "content": blocks})
    return messages


class LLMClient:
    def __init__(self) -> None:
        provider = (LLM_PROVIDER or "auto").lower()
        if provider == "auto":
            if OPENAI_API_KEY:
                provider = "openai"
            elif ANTHROPIC_API_KEY:
                provider = "anthropic"
            else:
                provider = "dummy"
        self.provider = provider

        self._anthropic = AsyncAnthropic(api_key=ANTHROPIC_API_KEY) if ANTHROPIC_API_KEY else None
        self._openai = AsyncOpenAI(api_key=OPENAI_API_KEY) if OPENAI_API_KEY else None

    def available(self) -> bool:
        if self.provider == "anthropic":
            return self._anthropic is not None
        if self.provider == "openai":
            return self._openai is not None
        return False

    def model_for_tier(self, tier: str | None) -> str:
        tier = (tier or LLM_DEFAULT_TIER or "standard").lower()
        if tier not in ("fast", "standard", "high"):
            tier = "standard"

        if tier == "fast" and LLM_MODEL_FAST:
            return LLM_MODEL_FAST
        if tier == "standard" and LLM_MODEL_STANDARD:
            return LLM_MODEL_STANDARD
        if tier == "high" and LLM_MODEL_HIGH:
            return LLM_MODEL_HIGH

        if self.provider == "anthropic":
            return _ANTHROPIC_DEFAULTS[tier]
        return _OPENAI_DEFAULTS[tier]

    async def stream(
        self,
        context: Sequence[ChatEntity],
        functions: Sequence[LLMFunction] = (),
        *,
        tier: str | None = None,
        max_tokens: int = LLM_MAX_TOKENS,
    ) -> AsyncIterator[str | ToolCall]:
        """Stream one model turn as text fragments followed by any tool calls."""
        if not self.available():
            raise LLMUnavailableError("LLM provider unavailable")

        model = self.model_for_tier(tier)
        if self.provider == "anthropic":
            source = self._stream_anthropic(model, context, functions, max_tokens)
        else:
            source = self._stream_openai(model, context, functions, max_tokens)

        try:
            async for item in source:
                yield item
        except (openai.APIError, anthropic.APIError, httpx.HTTPError) as exc:
            raise LLMTransportError(f"{self.provider} request failed: {exc}") from exc

    async def _stream_openai(
        self,
        model: str,
        context: Sequence[ChatEntity],
        functions: Sequence[LLMFunction],
        max_tokens: int,
    ) -> AsyncIterator[str | ToolCall]:
        kwargs: dict = {
            "model": model,
            "messages": [_openai_message(e) for e in context],
            "max_tokens": max_tokens,
            "stream": True,
        }
        if functions:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": f.name,
                        "description": f.description,
                        "parameters": f.json_schema(),
                    },
                }
                for f in functions
            ]

        stream = await self._openai.chat.completions.create(**kwargs)
        pending: dict[int, dict[str, str]] = {}
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta.content:
                yield delta.content
            for call in delta.tool_calls or []:
                slot = pending.setdefault(call.index, {"id": "", "name": "", "arguments": ""})
                if call.id:
                    slot["id"] = call.id
                if call.function is not None:
                    if call.function.name:
                        slot["name"] += call.function.name
                    if call.function.arguments:
                        slot["arguments"] += call.function.arguments

        for index in sorted(pending):
            yield ToolCall(**pending[index])

    async def _stream_anthropic(
        self,
        model: str,
        context: Sequence[ChatEntity],
        functions: Sequence[LLMFunction],
        max_tokens: int,
    ) -> AsyncIterator[str | ToolCall]:
        kwargs: dict = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": _anthropic_messages(context),
        }
        system = "\n\n".join(e.content for e in context if e.role == "system" and e.content)
        if system:
            kwargs["system"] = system
        if functions:
            kwargs["tools"] = [
                {"name": f.name, "description": f.description, "input_schema": f.json_schema()}
                for f in functions
            ]

        async with self._anthropic.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                yield text
            final = await stream.get_final_message()

        for block in final.content:
            if getattr(block, "type", "") == "tool_use":
                yield ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input))


class ChatSession:
    """Conversation context plus the functions the model may call in it."""

    def __init__(
        self,
        system_prompt: str = "",
        functions: Sequence[LLMFunction] = (),
        *,
        client: LLMClient | None = None,
        tier: str | None = None,
    ) -> None:
        self.client = client or get_llm_client()
        self.tier = tier
        self.functions = {f.name: f for f in functions}
        self.context: list[ChatEntity] = []
        if system_prompt:
            self.append_system(system_prompt)

    def append_system(self, content: str) -> None:
        self.context.append(ChatEntity(role="system", content=content))

    def append_user(self, content: str) -> None:
        self.context.append(ChatEntity(role="user", content=content))

    def insert_assistant(self, content: str, index: int = 0) -> None:
        self.context.insert(index, ChatEntity(role="assistant", content=content))

    def transcript(self) -> list[ChatEntity]:
        """Messages a patient would see: no system text, no function plumbing."""
        return [
            e for e in self.context
            if e.role in ("user", "assistant") and e.content
        ]

    async def generate(self) -> AsyncIterator[str]:
        """Stream the model's reply, running any function calls it makes."""
        functions = list(self.functions.values())
        for _ in range(LLM_MAX_FUNCTION_ROUNDS + 1):
            parts: list[str] = []
            calls: list[ToolCall] = []
            async for item in self.client.stream(self.context, functions, tier=self.tier):
                if isinstance(item, ToolCall):
                    calls.append(item)
                else:
                    parts.append(item)
                    yield item

            text = "".join(parts)
            self.context.append(ChatEntity(role="assistant", content=text, tool_calls=calls))
            if not calls:
                return

            for call in calls:
                result = await self._call_function(call)
                self.context.append(ChatEntity(role="tool", content=result, tool_call_id=call.id))

        raise LLMError(f"Function call limit of {LLM_MAX_FUNCTION_ROUNDS} rounds reached")

    async def complete(self) -> str:
        """Run ``generate`` to the end and return the concatenated text."""
        response = ""
        async for token in self.generate():
            response += token
        return response

    async def _call_function(self, call: ToolCall) -> str:
        function = self.functions.get(call.name)
        if function is None:
            logger.warning("Model called unknown function %s", call.name)
            return f"Unknown function {call.name}"
        logger.info("Executing function %s", call.name)
        return await function.invoke(call.arguments)


_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    global _client
    if _client is None:
        _client = LLMClient()
    return _client

import logging

from fastapi import APIRouter, HTTPException

from intake.models.session import (
    AssistantStatus,
    AssistantTranscript,
    ChatEntry,
    ChatMessageRequest,
    ChatTurnResponse,
)
from intake.routers.sessions import _get_session
from intake.services.assistants import AssistantKind, open_assistant, send_message
from intake.services.llm import LLMError, LLMUnavailableError, get_llm_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["assistants"])


def _transcript(kind: AssistantKind, assistant) -> AssistantTranscript:
    return AssistantTranscript(
        kind=kind.value,
        messages=[ChatEntry(role=e.role, content=e.content) for e in assistant.chat.transcript()],
    )


@router.get("/assistants/status", response_model=AssistantStatus)
async def assistant_status():
    """Whether an LLM provider key is configured (LLM onboarding check)."""
    client = get_llm_client()
    return AssistantStatus(token_present=client.available(), provider=client.provider)


@router.get("/sessions/{session_id}/assistants/{kind}", response_model=AssistantTranscript)
async def get_assistant(session_id: str, kind: AssistantKind):
    session = _get_session(session_id)
    assistant = open_assistant(session, kind)
    return _transcript(kind, assistant)


@router.post("/sessions/{session_id}/assistants/{kind}/messages", response_model=ChatTurnResponse)
async def post_message(session_id: str, kind: AssistantKind, body: ChatMessageRequest):
    """Send the patient's message to the assistant and return its reply."""
    session = _get_session(session_id)
    if not get_llm_client().available():
        raise HTTPException(status_code=503, detail="LLM onboarding required: no API key configured")

    assistant = open_assistant(session, kind)
    try:
        reply, merged = await send_message(assistant, body.message)
    except LLMError as e:
        logger.error("%s assistant turn failed for session %s: %s", kind.value, session_id, e)
        status = 503 if isinstance(e, LLMUnavailableError) else 502
        raise HTTPException(status_code=status, detail="Assistant unavailable") from e

    return ChatTurnResponse(
        kind=kind.value,
        reply=reply,
        merged=[record.model_dump() for record in merged],
    )

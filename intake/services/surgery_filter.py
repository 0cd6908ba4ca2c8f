"""Surgical history pipeline: procedures in, a clean surgery list out.

FHIR procedures are normalized into SurgeryRecords, administrative entries are
dropped with a keyword list, the hosted model narrows the remainder to real
surgeries, and the result is ordered most recent first. The model step is
best effort: whatever goes wrong there, the keyword-filtered list is used.
"""

import asyncio
import logging
from datetime import date, datetime

from intake.config import LLM_FILTER_TIMEOUT, LLM_FILTERING
from intake.models.records import SurgeryRecord
from intake.prompts import PROMPT_VERSION, SURGERY_FILTER_PROMPT
from intake.services.event_bus import event_bus
from intake.services.fhir_client import ClinicalRecordSource
from intake.services.llm import ChatSession, LLMClient, LLMEmptyResponseError
from intake.services.normalizer import coded_name, normalize_procedure
from intake.store import IntakeSession

logger = logging.getLogger(__name__)

STOP_WORDS = [
    "screen",
    "medication",
    "examination",
    "assess",
    "development",
    "notification",
    "clarification",
    "discussion ",
    "option",
    "review",
    "evaluation",
    "management",
    "consultation",
    "referral",
    "interpretation",
    "discharge",
    "certification",
    "preparation",
]

DATE_FORMAT = "%Y-%m-%d"


def contains_any(text: str, words: list[str]) -> bool:
    return any(word in text for word in words)


def stopword_filter(surgeries: list[SurgeryRecord]) -> list[SurgeryRecord]:
    """Drop records whose name mentions an administrative term (case-insensitive)."""
    return [s for s in surgeries if not contains_any(s.name.lower(), STOP_WORDS)]


def parse_accepted_names(response: str) -> list[str]:
    """Split the model's comma-separated answer into surgery names."""
    text = response.strip().rstrip(".").strip()
    if not text:
        raise LLMEmptyResponseError("Filtering response contained no names")
    return [name for name in text.split(", ") if name]


def reconcile_names(surgeries: list[SurgeryRecord], accepted: list[str]) -> list[SurgeryRecord]:
    """Keep records matching an accepted name and rename them to it.

    A record matches when its name contains an accepted name. When several
    accepted names match, the first one in the model's answer wins.
    """
    result = []
    for surgery in surgeries:
        match = next((name for name in accepted if name in surgery.name), None)
        if match is not None:
            result.append(surgery.model_copy(update={"name": match}))
    return result


async def query_assistant(names: list[str], client: LLMClient | None = None) -> str:
    session = ChatSession(SURGERY_FILTER_PROMPT, client=client)
    session.append_user(", ".join(names))
    return await session.complete()


async def refine_with_assistant(
    surgeries: list[SurgeryRecord],
    *,
    client: LLMClient | None = None,
    enabled: bool | None = None,
) -> list[SurgeryRecord]:
    """Narrow keyword-filtered records to real surgeries using the hosted model.

    Never raises: on any failure the input list is returned unchanged.
    Cancellation of the calling task is the exception and still propagates.
    """
    if enabled is None:
        enabled = LLM_FILTERING
    if not enabled or not surgeries:
        return surgeries

    try:
        response = await asyncio.wait_for(
            query_assistant([s.name for s in surgeries], client=client),
            timeout=LLM_FILTER_TIMEOUT,
        )
        accepted = parse_accepted_names(response)
    except Exception as exc:
        logger.warning("Error filtering with LLM: %s; returning manually filtered surgeries", exc)
        return surgeries

    refined = reconcile_names(surgeries, accepted)
    logger.info(
        "LLM filtering (prompt %s) kept %d of %d procedures",
        PROMPT_VERSION, len(refined), len(surgeries),
    )
    return refined


async def filter_surgeries(
    surgeries: list[SurgeryRecord],
    *,
    client: LLMClient | None = None,
    enabled: bool | None = None,
) -> list[SurgeryRecord]:
    manual = stopword_filter(surgeries)
    return await refine_with_assistant(manual, client=client, enabled=enabled)


def parse_record_date(value: str) -> date | None:
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        return None


def sort_surgeries_by_date(surgeries: list[SurgeryRecord]) -> None:
    """Sort in place, most recent first; undated records go last in their original order."""
    if len(surgeries) <= 1:
        return

    def key(surgery: SurgeryRecord) -> tuple[bool, date]:
        parsed = parse_record_date(surgery.date)
        return (parsed is not None, parsed or date.min)

    surgeries.sort(key=key, reverse=True)


async def load_surgeries(
    session: IntakeSession,
    source: ClinicalRecordSource,
    *,
    client: LLMClient | None = None,
    enabled: bool | None = None,
) -> list[SurgeryRecord]:
    """Populate a session's surgery list from its clinical-record source.

    A procedure is imported at most once per session, even after the model
    has renamed or dropped it.
    """
    known = {s.name for s in session.surgeries} | session.loaded_procedure_names
    for procedure in source.procedures:
        if procedure.get("resourceType", "Procedure") != "Procedure":
            logger.debug("Skipping non-Procedure resource %s", procedure.get("resourceType"))
            continue
        name = coded_name(procedure.get("code"))
        if name in known:
            continue
        session.surgeries.append(normalize_procedure(procedure))
        session.loaded_procedure_names.add(name)
        known.add(name)

    filtered = await filter_surgeries(session.surgeries, client=client, enabled=enabled)
    session.surgeries[:] = filtered
    sort_surgeries_by_date(session.surgeries)
    session.surgeries_loaded = True

    await event_bus.publish(session.id, {
        "type": "surgeries_loaded",
        "count": len(session.surgeries),
    })
    return session.surgeries

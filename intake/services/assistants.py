"""Chat assistants that sit next to each intake screen.

Every assistant is a nurse-persona ChatSession primed with the patient's
current list for its domain. The allergy and medical history assistants may
also add records: their functions capture a record into a PendingItem and a
MergeBridge appends it to the session list.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from intake import prompts
from intake.models.records import (
    AllergyRecord,
    MedicalHistoryRecord,
    MedicationRecord,
    SurgeryRecord,
)
from intake.services.event_bus import event_bus
from intake.services.llm import ChatSession, LLMClient, LLMFunction
from intake.services.merge_bridge import MergeBridge, PendingItem
from intake.store import IntakeSession

logger = logging.getLogger(__name__)


class AssistantKind(str, Enum):
    ALLERGY = "allergy"
    MEDICAL_HISTORY = "medical_history"
    MEDICATION = "medication"
    SURGERY = "surgery"


class UpdateAllergyArguments(BaseModel):
    allergy_name: str = Field(description="The allergy name the patient wants to create.")
    allergy_reaction: str = Field(description="The reaction of the allergy the patient wants to create.")


class UpdateMedicalHistoryArguments(BaseModel):
    condition: str = Field(description="The medical history condition name the patient wants to create.")
    active: str = Field(description="If the condition is active or inactive.")


class UpdateAllergyFunction(LLMFunction):
    name = "update_allergies"
    description = prompts.UPDATE_ALLERGIES_DESCRIPTION
    parameters = UpdateAllergyArguments

    def __init__(self, pending: PendingItem[AllergyRecord]) -> None:
        self.pending = pending

    async def execute(self, arguments: UpdateAllergyArguments) -> str | None:
        record = AllergyRecord(name=arguments.allergy_name, reactions=[arguments.allergy_reaction])
        await self.pending.capture(record)
        return None


class UpdateMedicalHistoryFunction(LLMFunction):
    name = "update_medical_history"
    description = prompts.UPDATE_MEDICAL_HISTORY_DESCRIPTION
    parameters = UpdateMedicalHistoryArguments

    def __init__(self, pending: PendingItem[MedicalHistoryRecord]) -> None:
        self.pending = pending

    async def execute(self, arguments: UpdateMedicalHistoryArguments) -> str | None:
        record = MedicalHistoryRecord(
            condition=arguments.condition,
            active=arguments.active == "active",
        )
        await self.pending.capture(record)
        return None


def describe_allergies(allergies: list[AllergyRecord]) -> str:
    details = "The patient has several allergies described in the next sentences."
    for allergy in allergies:
        if allergy.reactions:
            details += f"The patient has allergy {allergy.name} with the reaction {allergy.reactions[0]}.\n"
        else:
            details += f"The patient has allergy {allergy.name}.\n"
    return details


def describe_medical_history(conditions: list[MedicalHistoryRecord]) -> str:
    details = (
        "The patient has had several conditions in their medical history "
        "described in the following sentences."
    )
    for condition in conditions:
        state = "an active" if condition.active else "an inactive"
        details += (
            f"The patient has the condition {condition.condition} "
            f"and it is currently {state} condition.\n"
        )
    return details


def describe_medications(medications: list[MedicationRecord]) -> str:
    details = "The patient is currently taking several medications:"
    for medication in medications:
        details += (
            f"The patient is taking medication {medication.name}, the dose is "
            f"{medication.dosage or 'unknown'}, and the frequency is "
            f"{medication.frequency or 'unknown'}.\n"
        )
    return details


def describe_surgeries(surgeries: list[SurgeryRecord]) -> str:
    details = "The patient has had several surgeries described in the next sentences."
    for surgery in surgeries:
        when = f" on {surgery.date}" if surgery.date else ""
        details += f"The patient had {surgery.name}{when}.\n"
    return details


@dataclass
class Assistant:
    kind: AssistantKind
    chat: ChatSession
    bridge: MergeBridge | None = None
    greeted: bool = False
    context_added: bool = False


def _context_for(session: IntakeSession, kind: AssistantKind) -> str:
    if kind is AssistantKind.ALLERGY:
        return describe_allergies(session.allergies)
    if kind is AssistantKind.MEDICAL_HISTORY:
        return describe_medical_history(session.conditions)
    if kind is AssistantKind.MEDICATION:
        return describe_medications(session.medications)
    return describe_surgeries(session.surgeries)


def build_assistant(
    session: IntakeSession,
    kind: AssistantKind,
    client: LLMClient | None = None,
) -> Assistant:
    async def _published(record: BaseModel) -> None:
        await event_bus.publish(session.id, {
            "type": "record_merged",
            "kind": kind.value,
            "record": record.model_dump(),
        })

    bridge = None
    if kind is AssistantKind.ALLERGY:
        pending: PendingItem = PendingItem()
        functions: list[LLMFunction] = [UpdateAllergyFunction(pending)]
        bridge = MergeBridge(pending, session.allergies, on_merged=_published)
        system_prompt = prompts.ALLERGY_ASSISTANT_PROMPT
    elif kind is AssistantKind.MEDICAL_HISTORY:
        pending = PendingItem()
        functions = [UpdateMedicalHistoryFunction(pending)]
        bridge = MergeBridge(pending, session.conditions, on_merged=_published)
        system_prompt = prompts.MEDICAL_HISTORY_ASSISTANT_PROMPT
    elif kind is AssistantKind.MEDICATION:
        functions = []
        system_prompt = prompts.MEDICATION_ASSISTANT_PROMPT
    else:
        functions = []
        system_prompt = prompts.SURGERY_ASSISTANT_PROMPT

    chat = ChatSession(system_prompt, functions, client=client)
    return Assistant(kind=kind, chat=chat, bridge=bridge)


def open_assistant(
    session: IntakeSession,
    kind: AssistantKind,
    client: LLMClient | None = None,
) -> Assistant:
    """Return the session's assistant for ``kind``, creating and priming it once."""
    assistant = session.assistants.get(kind.value)
    if assistant is None:
        assistant = build_assistant(session, kind, client=client)
        session.assistants[kind.value] = assistant

    if not assistant.context_added:
        assistant.chat.append_system(_context_for(session, kind))
        assistant.context_added = True
    if not assistant.greeted:
        assistant.chat.insert_assistant(prompts.GREETINGS[kind.value], index=0)
        assistant.greeted = True
    return assistant


async def send_message(assistant: Assistant, message: str) -> tuple[str, list]:
    """Run one chat turn and return the reply plus any records it merged."""
    assistant.chat.append_user(message)
    reply = await assistant.chat.complete()
    merged = assistant.bridge.drain() if assistant.bridge else []
    if merged:
        logger.info("%s assistant added %d record(s)", assistant.kind.value, len(merged))
    return reply, merged

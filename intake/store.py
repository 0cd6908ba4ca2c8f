"""Process-wide, in-memory store of intake sessions.

Each session owns the ordered record lists the intake screens edit. Lists are
mutated in place so components holding a reference (merge bridges, assistant
context builders) always see the current contents.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from intake.models.records import (
    AllergyRecord,
    MedicalHistoryRecord,
    MedicationRecord,
    SurgeryRecord,
)
from intake.services.fhir_client import ClinicalRecordSource

logger = logging.getLogger(__name__)


@dataclass
class IntakeSession:
    id: str
    created_at: str
    patient_id: str | None = None
    source: ClinicalRecordSource = field(default_factory=ClinicalRecordSource)
    surgeries: list[SurgeryRecord] = field(default_factory=list)
    allergies: list[AllergyRecord] = field(default_factory=list)
    conditions: list[MedicalHistoryRecord] = field(default_factory=list)
    medications: list[MedicationRecord] = field(default_factory=list)
    surgeries_loaded: bool = False
    # Coded names of source procedures already imported, before any renaming
    loaded_procedure_names: set[str] = field(default_factory=set)
    assistants: dict[str, Any] = field(default_factory=dict)

    def find_surgery(self, surgery_id: str) -> SurgeryRecord | None:
        for surgery in self.surgeries:
            if surgery.id == surgery_id:
                return surgery
        return None


class IntakeStore:
    def __init__(self) -> None:
        self._sessions: dict[str, IntakeSession] = {}

    def create(self, patient_id: str | None = None) -> IntakeSession:
        session = IntakeSession(
            id=str(uuid.uuid4()),
            created_at=datetime.now(UTC).isoformat(),
            patient_id=patient_id,
        )
        self._sessions[session.id] = session
        logger.info("Created intake session %s", session.id)
        return session

    def get(self, session_id: str) -> IntakeSession | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


_store: IntakeStore | None = None


def get_store() -> IntakeStore:
    global _store
    if _store is None:
        _store = IntakeStore()
    return _store


def close_store() -> None:
    global _store
    if _store is not None:
        _store.clear()
    _store = None

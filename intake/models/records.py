"""Pydantic models for the records a patient reviews during intake.

Equality on these models is structural (field by field), which is what the
assistant merge bridge relies on to tell a new record from a repeated one.
"""

import uuid

from pydantic import BaseModel, Field


def _new_id() -> str:
    return uuid.uuid4().hex


class SurgeryRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str = ""
    date: str = ""
    end_date: str = ""
    status: str = ""
    location: str = ""
    notes: list[str] = []
    body_sites: list[str] = []
    complications: list[str] = []


class AllergyRecord(BaseModel):
    name: str
    reactions: list[str] = []


class MedicalHistoryRecord(BaseModel):
    condition: str
    active: bool = False


class MedicationRecord(BaseModel):
    name: str
    dosage: str = ""
    frequency: str = ""
    status: str = ""

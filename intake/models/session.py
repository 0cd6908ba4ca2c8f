from pydantic import BaseModel

from intake.models.records import (
    AllergyRecord,
    MedicalHistoryRecord,
    MedicationRecord,
    SurgeryRecord,
)


class SessionCreate(BaseModel):
    patient_id: str | None = None
    fhir_base_url: str | None = None
    use_test_patient: bool | None = None


class SessionResponse(BaseModel):
    id: str
    created_at: str
    patient_id: str | None = None
    surgeries_loaded: bool
    surgeries: list[SurgeryRecord] = []
    allergies: list[AllergyRecord] = []
    conditions: list[MedicalHistoryRecord] = []
    medications: list[MedicationRecord] = []


class SurgeryCreate(BaseModel):
    name: str = "Surgery"
    date: str = ""
    status: str = ""
    location: str = ""


class SurgeryUpdate(BaseModel):
    name: str | None = None
    date: str | None = None
    end_date: str | None = None
    status: str | None = None
    location: str | None = None


class ChatEntry(BaseModel):
    role: str
    content: str


class AssistantTranscript(BaseModel):
    kind: str
    messages: list[ChatEntry] = []


class ChatMessageRequest(BaseModel):
    message: str


class ChatTurnResponse(BaseModel):
    kind: str
    reply: str
    merged: list[dict] = []


class AssistantStatus(BaseModel):
    token_present: bool
    provider: str

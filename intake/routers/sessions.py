import logging

from fastapi import APIRouter, HTTPException

from intake.config import USE_TEST_PATIENT
from intake.mock_data import TEST_PATIENT_ID, build_test_patient_bundle
from intake.models.records import AllergyRecord, MedicalHistoryRecord, MedicationRecord, SurgeryRecord
from intake.models.session import SessionCreate, SessionResponse, SurgeryCreate, SurgeryUpdate
from intake.services.event_bus import event_bus
from intake.services.fhir_client import (
    ClinicalRecordSource,
    FHIRServerNotAllowedError,
    fetch_patient_record,
    resolve_server,
    source_from_bundle,
)
from intake.services.normalizer import (
    normalize_allergy,
    normalize_condition,
    normalize_medication,
    relevant_medications,
    unique_display_names,
)
from intake.services.surgery_filter import load_surgeries, sort_surgeries_by_date
from intake.store import IntakeSession, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _get_session(session_id: str) -> IntakeSession:
    session = get_store().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _seed_records(session: IntakeSession, source: ClinicalRecordSource) -> None:
    session.source = source
    session.conditions.extend(normalize_condition(c) for c in unique_display_names(source.conditions))
    session.allergies.extend(normalize_allergy(a) for a in unique_display_names(source.allergies))
    session.medications.extend(normalize_medication(m) for m in relevant_medications(source.medications))


def _session_response(session: IntakeSession) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        created_at=session.created_at,
        patient_id=session.patient_id,
        surgeries_loaded=session.surgeries_loaded,
        surgeries=session.surgeries,
        allergies=session.allergies,
        conditions=session.conditions,
        medications=session.medications,
    )


@router.post("", response_model=SessionResponse)
async def create_session(body: SessionCreate):
    """Start an intake session, optionally seeded from a FHIR patient record."""
    use_test_patient = USE_TEST_PATIENT if body.use_test_patient is None else body.use_test_patient

    if use_test_patient:
        session = get_store().create(patient_id=TEST_PATIENT_ID)
        _seed_records(session, source_from_bundle(build_test_patient_bundle()))
    elif body.patient_id:
        try:
            base_url = resolve_server(body.fhir_base_url)
        except FHIRServerNotAllowedError as e:
            logger.warning("Rejected session for patient %s: %s", body.patient_id, e)
            raise HTTPException(status_code=400, detail="FHIR server not allowed") from e
        session = get_store().create(patient_id=body.patient_id)
        source = await fetch_patient_record(body.patient_id, base_url)
        _seed_records(session, source)
    else:
        session = get_store().create()

    return _session_response(session)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return _session_response(_get_session(session_id))


@router.delete("/{session_id}")
async def delete_session(session_id: str):
    _get_session(session_id)
    get_store().remove(session_id)
    return {"id": session_id, "deleted": True}


# --- Surgeries ---


@router.get("/{session_id}/surgeries", response_model=list[SurgeryRecord])
async def list_surgeries(session_id: str):
    """Surgical history, loaded from the clinical record on first access."""
    session = _get_session(session_id)
    if not session.surgeries_loaded:
        await load_surgeries(session, session.source)
    else:
        sort_surgeries_by_date(session.surgeries)
    return session.surgeries


@router.post("/{session_id}/surgeries/load", response_model=list[SurgeryRecord])
async def reload_surgeries(session_id: str):
    session = _get_session(session_id)
    return await load_surgeries(session, session.source)


@router.post("/{session_id}/surgeries", response_model=SurgeryRecord)
async def add_surgery(session_id: str, body: SurgeryCreate):
    session = _get_session(session_id)
    surgery = SurgeryRecord(**body.model_dump())
    session.surgeries.append(surgery)
    await event_bus.publish(session.id, {
        "type": "record_added",
        "kind": "surgery",
        "record": surgery.model_dump(),
    })
    return surgery


@router.put("/{session_id}/surgeries/{surgery_id}", response_model=SurgeryRecord)
async def update_surgery(session_id: str, surgery_id: str, body: SurgeryUpdate):
    session = _get_session(session_id)
    surgery = session.find_surgery(surgery_id)
    if surgery is None:
        raise HTTPException(status_code=404, detail="Surgery not found")

    for key, value in body.model_dump(exclude_none=True).items():
        setattr(surgery, key, value)
    return surgery


@router.delete("/{session_id}/surgeries/{surgery_id}")
async def delete_surgery(session_id: str, surgery_id: str):
    session = _get_session(session_id)
    surgery = session.find_surgery(surgery_id)
    if surgery is None:
        raise HTTPException(status_code=404, detail="Surgery not found")

    session.surgeries.remove(surgery)
    await event_bus.publish(session.id, {
        "type": "record_deleted",
        "kind": "surgery",
        "id": surgery_id,
    })
    return {"id": surgery_id, "deleted": True}


# --- Allergies, medical history, medications ---


@router.get("/{session_id}/allergies", response_model=list[AllergyRecord])
async def list_allergies(session_id: str):
    return _get_session(session_id).allergies


@router.post("/{session_id}/allergies", response_model=AllergyRecord)
async def add_allergy(session_id: str, body: AllergyRecord):
    session = _get_session(session_id)
    session.allergies.append(body)
    await event_bus.publish(session.id, {
        "type": "record_added",
        "kind": "allergy",
        "record": body.model_dump(),
    })
    return body


@router.get("/{session_id}/conditions", response_model=list[MedicalHistoryRecord])
async def list_conditions(session_id: str):
    return _get_session(session_id).conditions


@router.post("/{session_id}/conditions", response_model=MedicalHistoryRecord)
async def add_condition(session_id: str, body: MedicalHistoryRecord):
    session = _get_session(session_id)
    session.conditions.append(body)
    await event_bus.publish(session.id, {
        "type": "record_added",
        "kind": "medical_history",
        "record": body.model_dump(),
    })
    return body


@router.get("/{session_id}/medications", response_model=list[MedicationRecord])
async def list_medications(session_id: str):
    return _get_session(session_id).medications

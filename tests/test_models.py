"""Tests for Pydantic models - intake records and session schemas."""

import pytest
from pydantic import ValidationError

from intake.models.records import AllergyRecord, MedicalHistoryRecord, MedicationRecord, SurgeryRecord
from intake.models.session import SessionCreate, SurgeryCreate, SurgeryUpdate

# --- Records ---


class TestSurgeryRecord:
    def test_defaults(self):
        s = SurgeryRecord()
        assert s.name == ""
        assert s.date == ""
        assert s.end_date == ""
        assert s.notes == []
        assert s.body_sites == []
        assert s.complications == []

    def test_ids_are_unique(self):
        assert SurgeryRecord().id != SurgeryRecord().id

    def test_copy_keeps_id(self):
        original = SurgeryRecord(name="Appendectomy (procedure)", date="1994-07-30")
        renamed = original.model_copy(update={"name": "Appendectomy"})
        assert renamed.id == original.id
        assert renamed.date == "1994-07-30"
        assert original.name == "Appendectomy (procedure)"

    def test_list_defaults_not_shared(self):
        a = SurgeryRecord()
        a.notes.append("note")
        assert SurgeryRecord().notes == []


class TestRecordEquality:
    def test_allergy_structural_equality(self):
        assert AllergyRecord(name="Peanuts", reactions=["Hives"]) == AllergyRecord(name="Peanuts", reactions=["Hives"])
        assert AllergyRecord(name="Peanuts", reactions=["Hives"]) != AllergyRecord(name="Peanuts")

    def test_medical_history_equality(self):
        assert MedicalHistoryRecord(condition="Asthma", active=True) == MedicalHistoryRecord(condition="Asthma", active=True)
        assert MedicalHistoryRecord(condition="Asthma", active=True) != MedicalHistoryRecord(condition="Asthma")

    def test_required_fields(self):
        with pytest.raises(ValidationError):
            AllergyRecord()
        with pytest.raises(ValidationError):
            MedicalHistoryRecord()

    def test_medication_defaults(self):
        m = MedicationRecord(name="Lisinopril")
        assert m.dosage == ""
        assert m.frequency == ""
        assert m.status == ""


# --- Session schemas ---


class TestSessionSchemas:
    def test_session_create_defaults(self):
        body = SessionCreate()
        assert body.patient_id is None
        assert body.use_test_patient is None

    def test_surgery_create_default_name(self):
        assert SurgeryCreate().name == "Surgery"

    def test_surgery_update_partial(self):
        update = SurgeryUpdate(location="General Hospital")
        assert update.model_dump(exclude_none=True) == {"location": "General Hospital"}

"""Synthetic test patient, shaped like a Synthea FHIR R4 export."""

TEST_PATIENT_ID = "intake-test-patient"


def _concept(display: str, code: str = "", system: str = "http://snomed.info/sct") -> dict:
    return {"coding": [{"system": system, "code": code, "display": display}], "text": display}


def _procedure(pid: str, display: str, status: str = "completed", **extra) -> dict:
    resource = {
        "resourceType": "Procedure",
        "id": pid,
        "status": status,
        "code": _concept(display),
        "subject": {"reference": f"Patient/{TEST_PATIENT_ID}"},
    }
    resource.update(extra)
    return resource


def build_test_patient_bundle() -> dict:
    """Return a fresh Bundle for the test patient (callers may mutate it)."""
    resources = [
        {
            "resourceType": "Patient",
            "id": TEST_PATIENT_ID,
            "name": [{"given": ["Ana"], "family": "Rivera"}],
            "gender": "female",
            "birthDate": "1968-04-12",
        },
        _procedure(
            "proc-1", "Transplant of kidney (procedure)",
            performedPeriod={"start": "2016-03-02T08:00:00-05:00", "end": "2016-03-02T14:30:00-05:00"},
            location={"display": "Stanford Hospital"},
            bodySite=[{"text": "Left iliac fossa"}],
            note=[{"text": "Living donor graft."}],
        ),
        _procedure(
            "proc-2", "Mammography (procedure)",
            performedDateTime="2021-09-14T10:15:00-05:00",
        ),
        _procedure(
            "proc-3", "Certification procedure (procedure)",
            performedDateTime="2019-01-07T09:00:00-05:00",
        ),
        _procedure(
            "proc-4", "Medication reconciliation (procedure)",
            performedDateTime="2020-06-22T11:00:00-05:00",
        ),
        _procedure(
            "proc-5", "Appendectomy (procedure)",
            performedDateTime="1994-07-30T16:45:00-05:00",
            complication=[{"text": "Wound infection"}],
        ),
        {
            "resourceType": "Condition",
            "id": "cond-1",
            "clinicalStatus": {"coding": [{
                "system": "http://terminology.hl7.org/CodeSystem/condition-clinical",
                "code": "active",
            }]},
            "code": _concept("Essential hypertension (disorder)", "59621000"),
            "onsetDateTime": "2012-05-01T00:00:00-05:00",
        },
        {
            "resourceType": "Condition",
            "id": "cond-2",
            "clinicalStatus": {"coding": [{
                "system": "http://terminology.hl7.org/CodeSystem/condition-clinical",
                "code": "resolved",
            }]},
            "code": _concept("Acute bronchitis (disorder)", "10509002"),
            "onsetDateTime": "2018-11-20T00:00:00-05:00",
        },
        {
            "resourceType": "AllergyIntolerance",
            "id": "allergy-1",
            "code": _concept("Allergy to peanuts", "91935009"),
            "reaction": [{"manifestation": [_concept("Hives", "247472004")]}],
        },
        {
            "resourceType": "MedicationRequest",
            "id": "med-1",
            "status": "active",
            "medicationCodeableConcept": _concept(
                "lisinopril 10 MG Oral Tablet", "314076", "http://www.nlm.nih.gov/research/umls/rxnorm",
            ),
            "authoredOn": "2022-02-01T00:00:00-05:00",
            "dosageInstruction": [{
                "text": "10 mg",
                "timing": {"repeat": {"frequency": 1, "period": 1, "periodUnit": "d"}},
            }],
        },
        {
            "resourceType": "MedicationRequest",
            "id": "med-2",
            "status": "stopped",
            "medicationCodeableConcept": _concept(
                "Amoxicillin 250 MG Oral Capsule", "308182", "http://www.nlm.nih.gov/research/umls/rxnorm",
            ),
            "authoredOn": "2018-11-20T00:00:00-05:00",
        },
    ]
    return {
        "resourceType": "Bundle",
        "type": "collection",
        "entry": [{"resource": r} for r in resources],
    }

"""Turn FHIR R4 resources into the records shown on the intake screens."""

import logging

from intake.models.records import (
    AllergyRecord,
    MedicalHistoryRecord,
    MedicationRecord,
    SurgeryRecord,
)
from intake.services.fhir_client import _extract_display

logger = logging.getLogger(__name__)

PROCEDURE_STATUS_LABELS = {
    "completed": "Completed",
    "in-progress": "In Progress",
    "not-done": "Not Done",
    "on-hold": "On Hold",
    "stopped": "Stopped",
    "entered-in-error": "Entered in Error",
}

CONDITION_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"


def _calendar_date(value: str | None) -> str:
    """Calendar-date part of a FHIR date or dateTime ("2019-05-01T10:00:00Z" -> "2019-05-01")."""
    if not value:
        return ""
    return value.split("T", 1)[0]


def _texts(concepts: list[dict] | None) -> list[str]:
    return [c["text"] for c in concepts or [] if isinstance(c, dict) and c.get("text")]


def coded_name(codeable_concept: dict | None) -> str:
    """Display text of the first coding, or "Unknown"."""
    codings = (codeable_concept or {}).get("coding") or []
    if codings and codings[0].get("display"):
        return codings[0]["display"]
    return "Unknown"


def procedure_status(status: str | None) -> str:
    return PROCEDURE_STATUS_LABELS.get(status or "", "Unknown")


def normalize_procedure(resource: dict) -> SurgeryRecord:
    """Build a SurgeryRecord from a FHIR Procedure resource.

    Missing optional fields fall back to empty values; nothing here raises
    for an incomplete resource.
    """
    record = SurgeryRecord(
        name=coded_name(resource.get("code")),
        status=procedure_status(resource.get("status")),
    )

    period = resource.get("performedPeriod")
    if period:
        record.date = _calendar_date(period.get("start"))
        record.end_date = _calendar_date(period.get("end"))
    elif resource.get("performedDateTime"):
        record.date = _calendar_date(resource["performedDateTime"])
    else:
        logger.debug("Procedure %s has no performed date", resource.get("id", "?"))

    location = resource.get("location")
    if location:
        record.location = location.get("display", "")

    record.notes = [n["text"] for n in resource.get("note") or [] if n.get("text")]
    record.body_sites = _texts(resource.get("bodySite"))
    record.complications = _texts(resource.get("complication"))
    return record


def is_active_condition(resource: dict) -> bool:
    codings = (resource.get("clinicalStatus") or {}).get("coding") or []
    return any(
        c.get("system") == CONDITION_CLINICAL_SYSTEM and c.get("code") == "active"
        for c in codings
    )


def normalize_condition(resource: dict) -> MedicalHistoryRecord:
    return MedicalHistoryRecord(
        condition=coded_name(resource.get("code")),
        active=is_active_condition(resource),
    )


def normalize_allergy(resource: dict) -> AllergyRecord:
    reactions: list[str] = []
    for reaction in resource.get("reaction") or []:
        for manifestation in reaction.get("manifestation") or []:
            text = _extract_display(manifestation)
            if text != "Unknown" and text not in reactions:
                reactions.append(text)
        if not reaction.get("manifestation") and reaction.get("description"):
            reactions.append(reaction["description"])
    return AllergyRecord(name=coded_name(resource.get("code")), reactions=reactions)


def _dosage_text(dosage: dict) -> str:
    if dosage.get("text"):
        return dosage["text"]
    for dose_rate in dosage.get("doseAndRate") or []:
        quantity = dose_rate.get("doseQuantity") or {}
        if "value" in quantity:
            return f"{quantity['value']} {quantity.get('unit', '')}".strip()
    return ""


def _frequency_text(dosage: dict) -> str:
    repeat = (dosage.get("timing") or {}).get("repeat") or {}
    frequency = repeat.get("frequency")
    if not frequency:
        return ""
    period = repeat.get("period", 1)
    unit = repeat.get("periodUnit", "d")
    return f"{frequency} per {period} {unit}"


def normalize_medication(resource: dict) -> MedicationRecord:
    concept = resource.get("medicationCodeableConcept")
    if concept:
        name = _extract_display(concept)
    else:
        name = (resource.get("medicationReference") or {}).get("display", "Unknown")

    dosages = resource.get("dosageInstruction") or resource.get("dosage") or []
    first = dosages[0] if dosages else {}
    return MedicationRecord(
        name=name,
        dosage=_dosage_text(first),
        frequency=_frequency_text(first),
        status=resource.get("status", ""),
    )


def display_name(resource: dict) -> str:
    rtype = resource.get("resourceType")
    if rtype in ("MedicationRequest", "MedicationStatement"):
        return _extract_display(resource.get("medicationCodeableConcept"))
    return _extract_display(resource.get("code"))


def resource_date(resource: dict) -> str:
    """Best clinical date of a resource as an ISO string, or ""."""
    for key in ("performedDateTime", "onsetDateTime", "authoredOn", "recordedDate", "effectiveDateTime"):
        if resource.get(key):
            return resource[key]
    for key in ("performedPeriod", "onsetPeriod", "effectivePeriod"):
        if (resource.get(key) or {}).get("start"):
            return resource[key]["start"]
    return ""


def unique_display_names(resources: list[dict]) -> list[dict]:
    """Keep one resource per display name, preferring the most recent one.

    An undated resource already kept is never replaced; an undated newcomer
    never replaces a dated one.
    """
    kept: dict[str, dict] = {}
    for resource in resources:
        name = display_name(resource)
        current = kept.get(name)
        if current is None:
            kept[name] = resource
            continue
        current_date = resource_date(current)
        new_date = resource_date(resource)
        if current_date and new_date and current_date < new_date:
            kept[name] = resource
    return list(kept.values())


def relevant_medications(medications: list[dict]) -> list[dict]:
    """Outpatient or active medication requests, one per display name."""
    outpatient = [
        m for m in medications
        if any(
            (c.get("text") or "").lower() == "outpatient"
            for c in m.get("category") or []
        )
    ]
    active = [m for m in medications if m.get("status") == "active"]
    return unique_display_names(unique_display_names(outpatient) + unique_display_names(active))

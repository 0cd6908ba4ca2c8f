"""FHIR R4 clinical-record source for the intake screens.

Records come either from a FHIR R4 server (SMART on FHIR sandbox by default,
loaded with Synthea synthetic patients) or from a FHIR Bundle already in hand,
such as the bundled test patient. Resources are kept as plain JSON dicts; the
normalizer turns them into intake records.
"""

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from intake.config import FHIR_BASE_URL, FHIR_SERVERS, FHIR_TIMEOUT

logger = logging.getLogger(__name__)

FHIR_HEADERS = {
    "Accept": "application/fhir+json",
}

# Search endpoint per intake resource group
RESOURCE_TYPES = {
    "procedures": "Procedure",
    "conditions": "Condition",
    "medications": "MedicationRequest",
    "allergies": "AllergyIntolerance",
}


class FHIRServerNotAllowedError(ValueError):
    """The requested FHIR server is not in the configured server list."""


@dataclass
class ClinicalRecordSource:
    """Read-only clinical resources for one patient."""

    patient: dict | None = None
    procedures: list[dict] = field(default_factory=list)
    conditions: list[dict] = field(default_factory=list)
    medications: list[dict] = field(default_factory=list)
    allergies: list[dict] = field(default_factory=list)


def resolve_server(base_url: str | None = None) -> str:
    """Return the normalized base URL, refusing servers outside FHIR_SERVERS."""
    url = (base_url or FHIR_BASE_URL).rstrip("/")
    if url not in FHIR_SERVERS:
        raise FHIRServerNotAllowedError(f"FHIR server {url} is not allowed")
    return url


def _extract_display(codeable_concept: dict | None) -> str:
    """Extract human-readable display text from a FHIR CodeableConcept."""
    if not codeable_concept:
        return "Unknown"
    codings = codeable_concept.get("coding", [])
    for coding in codings:
        if coding.get("display"):
            return coding["display"]
    return codeable_concept.get("text", "Unknown")


def _extract_entries(bundle: dict | None) -> list[dict]:
    """Extract resource entries from a FHIR Bundle."""
    if not bundle or bundle.get("resourceType") != "Bundle":
        return []
    return [e["resource"] for e in bundle.get("entry", []) if "resource" in e]


def source_from_bundle(bundle: dict | None) -> ClinicalRecordSource:
    """Sort the resources of a FHIR Bundle into a ClinicalRecordSource."""
    source = ClinicalRecordSource()
    by_type = {rtype: key for key, rtype in RESOURCE_TYPES.items()}
    by_type["MedicationStatement"] = "medications"

    for resource in _extract_entries(bundle):
        rtype = resource.get("resourceType")
        if rtype == "Patient" and source.patient is None:
            source.patient = resource
        elif rtype in by_type:
            getattr(source, by_type[rtype]).append(resource)

    logger.info(
        "Loaded bundle: %d procedures, %d conditions, %d medications, %d allergies",
        len(source.procedures), len(source.conditions),
        len(source.medications), len(source.allergies),
    )
    return source


async def get_resources(
    client: httpx.AsyncClient,
    base_url: str,
    resource_type: str,
    patient_id: str,
) -> list[dict]:
    """Fetch all resources of one type for a patient."""
    resp = await client.get(
        f"{base_url}/{resource_type}",
        params={"patient": patient_id, "_count": "100"},
        headers=FHIR_HEADERS,
    )
    resp.raise_for_status()
    return _extract_entries(resp.json())


async def get_patient(
    client: httpx.AsyncClient,
    base_url: str,
    patient_id: str,
) -> dict | None:
    resp = await client.get(f"{base_url}/Patient/{patient_id}", headers=FHIR_HEADERS)
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.json()


async def fetch_patient_record(
    patient_id: str,
    base_url: str | None = None,
) -> ClinicalRecordSource:
    """Fetch every intake resource group for a patient concurrently.

    A resource group that fails to load is logged and left empty so the
    remaining screens still work. Raises FHIRServerNotAllowedError before
    any request when ``base_url`` is not a configured server.
    """
    base_url = resolve_server(base_url)
    async with httpx.AsyncClient(timeout=FHIR_TIMEOUT) as client:
        fetchers = {
            key: get_resources(client, base_url, rtype, patient_id)
            for key, rtype in RESOURCE_TYPES.items()
        }
        fetchers["patient"] = get_patient(client, base_url, patient_id)
        keys = list(fetchers.keys())
        results_list = await asyncio.gather(*fetchers.values(), return_exceptions=True)

    source = ClinicalRecordSource()
    for key, value in zip(keys, results_list, strict=True):
        if isinstance(value, BaseException):
            logger.warning("Failed to fetch %s for patient %s: %s", key, patient_id, value)
            continue
        setattr(source, key, value)
    return source

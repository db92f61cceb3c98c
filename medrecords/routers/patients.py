from typing import Any

from fastapi import APIRouter, Body, Depends, Query

from medrecords.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from medrecords.database import DatabaseAdapter, get_db
from medrecords.models.patient import (
    Patient,
    PatientCreatedResponse,
    PatientDeletedResponse,
    PatientListResponse,
    PatientUpdatedResponse,
)
from medrecords.models.stats import PatientStats, QueryOptimizationReport
from medrecords.services.patient_repository import PatientRepository
from medrecords.services.query_analyzer import analyze_search
from medrecords.services.statistics import get_patient_stats
from medrecords.services.validation import parse_patient_create, parse_patient_update

router = APIRouter(prefix="/api/patients", tags=["patients"])


def get_repository(db: DatabaseAdapter = Depends(get_db)) -> PatientRepository:
    return PatientRepository(db)


@router.get("", response_model=PatientListResponse)
async def list_patients(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    search: str = "",
    field: str = "name",
    repo: PatientRepository = Depends(get_repository),
):
    """List patients, newest first, optionally filtered by a search term.

    ``field`` selects what to search: ``name``, ``patientId``, ``allergies``
    or ``medicalHistory``. Any other value searches name and patient ID.
    """
    return await repo.search(search=search, field=field, page=page, limit=limit)


@router.post("", response_model=PatientCreatedResponse)
async def create_patient(
    body: dict[str, Any] = Body(...),
    repo: PatientRepository = Depends(get_repository),
):
    """Create a patient record after validating every field."""
    patient = parse_patient_create(body)
    record_id = await repo.create(patient)
    return PatientCreatedResponse(patient_id=record_id)


@router.get("/stats", response_model=PatientStats)
async def patient_stats(db: DatabaseAdapter = Depends(get_db)):
    """Counts, age and gender breakdowns, top allergies and recent activity."""
    return await get_patient_stats(db)


@router.get("/optimize", response_model=QueryOptimizationReport)
async def optimize_search(
    query: str = "",
    db: DatabaseAdapter = Depends(get_db),
):
    """Search every field and report how the store executed the query."""
    return await analyze_search(db, query)


@router.get("/{record_id}", response_model=Patient)
async def get_patient(record_id: str, repo: PatientRepository = Depends(get_repository)):
    return await repo.get(record_id)


@router.put("/{record_id}", response_model=PatientUpdatedResponse)
async def update_patient(
    record_id: str,
    body: dict[str, Any] = Body(...),
    repo: PatientRepository = Depends(get_repository),
):
    """Patch the supplied fields. Arrays are replaced, never appended to."""
    patch = parse_patient_update(body)
    modified = await repo.update(record_id, patch)
    return PatientUpdatedResponse(modified_count=modified)


@router.delete("/{record_id}", response_model=PatientDeletedResponse)
async def delete_patient(record_id: str, repo: PatientRepository = Depends(get_repository)):
    deleted = await repo.delete(record_id)
    return PatientDeletedResponse(deleted_count=deleted)

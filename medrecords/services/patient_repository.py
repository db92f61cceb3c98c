"""CRUD and search over stored patient records.

Uniqueness of ``patientId`` and ``contactInfo.email`` is checked before each
write so callers get a clear conflict message, but the UNIQUE indexes in the
schema are what actually guarantee it: two writers on the same database file
can both pass the check, and the loser then fails with an ``IntegrityError``
which is reported as the same ``Conflict``.

Within one process every operation holds the store handle's transaction lock
from its first read to its commit or rollback, so one request's rollback
never discards another request's pending write.
"""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import aiosqlite
from pydantic.alias_generators import to_camel

from medrecords.config import DEFAULT_PAGE_SIZE
from medrecords.database import DatabaseAdapter
from medrecords.errors import Conflict, NotFound, StorageError, ValidationError
from medrecords.models.audit import AuditAction
from medrecords.models.patient import (
    ARRAY_FIELDS,
    ContactInfo,
    Patient,
    PatientCreate,
    PatientListResponse,
    PatientUpdate,
)
from medrecords.services.audit_log import AuditLog
from medrecords.services.query_builder import ORDER_BY, SearchQuery, build_search_query, total_pages

logger = logging.getLogger(__name__)

PATIENT_ID_EXISTS = "Patient ID already exists"
EMAIL_EXISTS = "Email address already exists"
PATIENT_NOT_FOUND = "Patient not found"


def _load_list(raw: str | None, patient_id: str) -> list[str]:
    try:
        value = json.loads(raw or "[]")
    except json.JSONDecodeError:
        logger.debug("Failed to parse array field for patient %s", patient_id)
        return []
    return value if isinstance(value, list) else []


def row_to_patient(row) -> Patient:
    return Patient(
        id=row["id"],
        patient_id=row["patient_id"],
        name=row["name"],
        date_of_birth=row["date_of_birth"],
        gender=row["gender"],
        contact_info=ContactInfo(
            phone=row["phone"],
            email=row["email"],
            address=row["address"],
        ),
        allergies=_load_list(row["allergies"], row["id"]),
        medical_history=_load_list(row["medical_history"], row["id"]),
        current_prescriptions=_load_list(row["current_prescriptions"], row["id"]),
        doctor_notes=row["doctor_notes"] or "",
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _column_values(patch: PatientUpdate | PatientCreate, fields: list[str]) -> dict[str, str]:
    """Map model fields onto table columns."""
    columns = {}
    for name in fields:
        value = getattr(patch, name)
        if name == "contact_info":
            columns["phone"] = value.phone
            columns["email"] = value.email
            columns["address"] = value.address
        elif name in ARRAY_FIELDS:
            columns[name] = json.dumps(list(value))
        else:
            columns[name] = value
    return columns


def _conflict_from_integrity(exc: aiosqlite.IntegrityError) -> Exception:
    message = str(exc)
    if "patients.email" in message:
        return Conflict(EMAIL_EXISTS)
    if "patients.patient_id" in message:
        return Conflict(PATIENT_ID_EXISTS)
    return StorageError("The store rejected the write")


class PatientRepository:
    def __init__(self, db: DatabaseAdapter, audit: AuditLog | None = None) -> None:
        self.db = db
        self.audit = audit or AuditLog(db)

    @asynccontextmanager
    async def _storage(self, operation: str):
        """Run one unit of work on the shared handle.

        Store failures become service errors after the write is rolled back.
        """
        async with self.db.transaction():
            try:
                yield
            except aiosqlite.IntegrityError as exc:
                await self._rollback()
                raise _conflict_from_integrity(exc) from exc
            except aiosqlite.Error as exc:
                await self._rollback()
                raise StorageError(f"Failed to {operation}") from exc

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except aiosqlite.Error:
            logger.warning("Rollback failed", exc_info=True)

    async def _fetch_row(self, record_id: str):
        row = await self.db.fetch_one("SELECT * FROM patients WHERE id = ?", (record_id,))
        if not row:
            raise NotFound(PATIENT_NOT_FOUND)
        return row

    async def _email_taken(self, email: str, exclude_id: str | None = None) -> bool:
        if not email:
            return False
        row = await self.db.fetch_one(
            "SELECT id FROM patients WHERE email = ? AND id != ?",
            (email, exclude_id or ""),
        )
        return row is not None

    async def create(self, patient: PatientCreate) -> str:
        """Persist a new patient and return its storage id."""
        record_id = uuid.uuid4().hex
        now = datetime.now(timezone.utc).isoformat()

        async with self._storage("create patient"):
            existing = await self.db.fetch_one(
                "SELECT id FROM patients WHERE patient_id = ?", (patient.patient_id,)
            )
            if existing:
                logger.warning("Rejected duplicate patient ID %s", patient.patient_id)
                raise Conflict(PATIENT_ID_EXISTS)
            if await self._email_taken(patient.contact_info.email):
                logger.warning("Rejected duplicate email for patient %s", patient.patient_id)
                raise Conflict(EMAIL_EXISTS)

            columns = {
                "id": record_id,
                **_column_values(patient, list(type(patient).model_fields)),
                "created_at": now,
                "updated_at": now,
            }
            names = ", ".join(columns)
            placeholders = ", ".join("?" for _ in columns)
            await self.db.execute(
                f"INSERT INTO patients ({names}) VALUES ({placeholders})",
                tuple(columns.values()),
            )
            await self.db.commit()

        logger.info("Created patient %s (%s)", patient.patient_id, record_id)
        await self.audit.record(
            AuditAction.CREATE_PATIENT,
            patient.patient_id,
            {"insertedId": record_id},
        )
        return record_id

    async def get(self, record_id: str) -> Patient:
        async with self._storage("fetch patient"):
            row = await self._fetch_row(record_id)
        return row_to_patient(row)

    async def update(self, record_id: str, patch: PatientUpdate) -> int:
        """Apply a field-level patch. Returns the number of records modified."""
        async with self._storage("update patient"):
            current = await self._fetch_row(record_id)

            if "patient_id" in patch.model_fields_set and patch.patient_id != current["patient_id"]:
                raise ValidationError({"patientId": "Patient ID cannot be changed"})

            # An unchanged patientId on its own only touches updated_at
            fields = patch.patch_fields()
            if not fields and "patient_id" not in patch.model_fields_set:
                raise ValidationError({"body": "No updatable fields supplied"})

            if "contact_info" in fields and await self._email_taken(patch.contact_info.email, record_id):
                logger.warning("Rejected duplicate email on update of %s", current["patient_id"])
                raise Conflict(EMAIL_EXISTS)

            columns = _column_values(patch, fields)
            columns["updated_at"] = datetime.now(timezone.utc).isoformat()
            assignments = ", ".join(f"{column} = ?" for column in columns)
            modified = await self.db.execute(
                f"UPDATE patients SET {assignments} WHERE id = ?",
                (*columns.values(), record_id),
            )
            await self.db.commit()

        logger.info("Updated patient %s: %s", current["patient_id"], ", ".join(fields))
        await self.audit.record(
            AuditAction.UPDATE_PATIENT,
            current["patient_id"],
            {
                "updatedFields": [to_camel(name) for name in fields],
                "modifiedCount": modified,
            },
        )
        return modified

    async def delete(self, record_id: str) -> int:
        """Hard-delete a patient. Returns the number of records deleted."""
        async with self._storage("delete patient"):
            current = await self._fetch_row(record_id)
            deleted = await self.db.execute("DELETE FROM patients WHERE id = ?", (record_id,))
            await self.db.commit()
        if deleted == 0:
            raise NotFound(PATIENT_NOT_FOUND)

        logger.info("Deleted patient %s (%s)", current["patient_id"], record_id)
        await self.audit.record(
            AuditAction.DELETE_PATIENT,
            current["patient_id"],
            {
                "deletedPatient": {
                    "name": current["name"],
                    "patientId": current["patient_id"],
                    "deletedAt": datetime.now(timezone.utc).isoformat(),
                },
            },
        )
        return deleted

    async def find(self, query: SearchQuery) -> tuple[int, list[Patient]]:
        """Run a built query. Returns (total matches, current page)."""
        where = query.where_clause()
        async with self._storage("search patients"):
            count_row = await self.db.fetch_one(
                f"SELECT COUNT(*) AS count FROM patients{where}", query.params
            )
            rows = await self.db.fetch_all(
                f"SELECT * FROM patients{where} ORDER BY {ORDER_BY} LIMIT ? OFFSET ?",
                (*query.params, query.take, query.skip),
            )
        total = count_row["count"] if count_row else 0
        return total, [row_to_patient(row) for row in rows]

    async def search(
        self,
        search: str = "",
        field: str = "name",
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> PatientListResponse:
        query = build_search_query(search, field, page, limit)
        total, patients = await self.find(query)
        return PatientListResponse(
            patients=patients,
            current_page=page,
            total_pages=total_pages(total, limit),
            total=total,
        )

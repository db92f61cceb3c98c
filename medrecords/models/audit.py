from enum import Enum
from typing import Any

from pydantic import Field

from medrecords.models.base import CamelModel


class AuditAction(str, Enum):
    CREATE_PATIENT = "CREATE_PATIENT"
    UPDATE_PATIENT = "UPDATE_PATIENT"
    DELETE_PATIENT = "DELETE_PATIENT"


class AuditLogEntry(CamelModel):
    id: int | None = Field(default=None, alias="_id")
    action: AuditAction
    patient_id: str  # business identifier, not the storage id
    timestamp: str
    details: dict[str, Any] = {}

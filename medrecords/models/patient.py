"""Pydantic models for patient records.

Field names on the wire are camelCase (``patientId``, ``contactInfo``, ...)
and ``_id`` is the storage-assigned key; these names are the contract with
the UI and must not change.
"""

from pydantic import ConfigDict, Field, field_validator

from medrecords.models.base import CamelModel

ARRAY_FIELDS = ("allergies", "medical_history", "current_prescriptions")


class ContactInfo(CamelModel):
    phone: str = ""
    email: str = ""
    address: str = ""


class PatientBase(CamelModel):
    model_config = ConfigDict(extra="ignore")

    patient_id: str
    name: str
    date_of_birth: str
    gender: str
    contact_info: ContactInfo = ContactInfo()
    allergies: list[str] = []
    medical_history: list[str] = []
    current_prescriptions: list[str] = []
    doctor_notes: str = ""

    @field_validator(*ARRAY_FIELDS, mode="before")
    @classmethod
    def _none_to_empty_list(cls, value):
        return [] if value is None else value

    @field_validator("doctor_notes", mode="before")
    @classmethod
    def _none_to_empty_str(cls, value):
        return "" if value is None else value


class PatientCreate(PatientBase):
    """A new patient record. Only built after the validation rules pass."""


class PatientUpdate(CamelModel):
    """Partial update. ``model_fields_set`` is the set of fields to patch.

    Unknown keys and the read-only ``_id``/``createdAt``/``updatedAt`` are
    ignored so the UI can send back a full record it loaded earlier.
    """

    model_config = ConfigDict(extra="ignore")

    patient_id: str | None = None
    name: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    contact_info: ContactInfo | None = None
    allergies: list[str] | None = None
    medical_history: list[str] | None = None
    current_prescriptions: list[str] | None = None
    doctor_notes: str | None = None

    @field_validator(*ARRAY_FIELDS, mode="before")
    @classmethod
    def _none_to_empty_list(cls, value):
        return [] if value is None else value

    @field_validator("doctor_notes", mode="before")
    @classmethod
    def _none_to_empty_str(cls, value):
        return "" if value is None else value

    def patch_fields(self) -> list[str]:
        """Supplied fields in declaration order, excluding ``patient_id``."""
        return [
            name for name in type(self).model_fields
            if name in self.model_fields_set and name != "patient_id"
        ]


class Patient(PatientBase):
    id: str = Field(alias="_id")
    created_at: str
    updated_at: str


class PatientListResponse(CamelModel):
    patients: list[Patient]
    current_page: int
    total_pages: int
    total: int


class PatientCreatedResponse(CamelModel):
    message: str = "Patient created successfully"
    patient_id: str


class PatientUpdatedResponse(CamelModel):
    message: str = "Patient updated successfully"
    modified_count: int


class PatientDeletedResponse(CamelModel):
    message: str = "Patient deleted successfully"
    deleted_count: int

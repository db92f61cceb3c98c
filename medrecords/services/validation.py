"""Field-level validation rules for patient records.

Every rule is evaluated independently so the caller sees all violations at
once. The rules never raise: problems are reported through the returned
error mapping, keyed by field name (contact fields use their leaf names,
``phone``, ``email`` and ``address``, matching the form they come from).

``parse_patient_create`` and ``parse_patient_update`` sit at the HTTP
boundary: they run the rules and only then build the typed record.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from pydantic import ValidationError as SchemaError

from medrecords.errors import ValidationError
from medrecords.models.patient import PatientCreate, PatientUpdate

PATIENT_ID_PATTERN = re.compile(r"P\d{3,6}")
NAME_PATTERN = re.compile(r"[A-Za-z\s'-]+")
PHONE_PATTERN = re.compile(r"[+]?[1-9]\d{0,15}")
PHONE_STRIP_PATTERN = re.compile(r"[\s()\-]")
EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

GENDER_OPTIONS = ("Male", "Female", "Other", "Prefer not to say")

MIN_NAME_LENGTH = 2
MIN_ADDRESS_LENGTH = 10
MAX_AGE_YEARS = 150


@dataclass
class ValidationResult:
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def parse_date(value: Any) -> date | None:
    """Parse an ISO date or datetime string. Returns None if unparsable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def calculate_age(date_of_birth: str | date, today: date | None = None) -> int:
    """Age in whole years as of ``today``.

    Raises ValueError if ``date_of_birth`` cannot be parsed.
    """
    birth = parse_date(date_of_birth)
    if birth is None:
        raise ValueError(f"Invalid date of birth: {date_of_birth!r}")
    today = today or date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _check_patient_id(value: Any) -> str | None:
    if _is_blank(value):
        return "Patient ID is required"
    if not isinstance(value, str) or not PATIENT_ID_PATTERN.fullmatch(value):
        return "Patient ID must be in format P001-P999999"
    return None


def _check_name(value: Any) -> str | None:
    if _is_blank(value):
        return "Full name is required"
    if not isinstance(value, str):
        return "Name can only contain letters, spaces, hyphens, and apostrophes"
    if len(value.strip()) < MIN_NAME_LENGTH:
        return "Name must be at least 2 characters long"
    if not NAME_PATTERN.fullmatch(value):
        return "Name can only contain letters, spaces, hyphens, and apostrophes"
    return None


def _check_date_of_birth(value: Any, today: date) -> str | None:
    if _is_blank(value):
        return "Date of birth is required"
    birth = parse_date(value)
    if birth is None:
        return "Please enter a valid date"
    if birth > today:
        return "Date of birth cannot be in the future"
    if calculate_age(birth, today) > MAX_AGE_YEARS:
        return "Please enter a realistic date of birth"
    return None


def _check_gender(value: Any) -> str | None:
    if _is_blank(value):
        return "Gender is required"
    if value not in GENDER_OPTIONS:
        return "Please select a valid gender"
    return None


def _check_phone(value: Any) -> str | None:
    if _is_blank(value):
        return "Phone number is required"
    if not isinstance(value, str) or not PHONE_PATTERN.fullmatch(PHONE_STRIP_PATTERN.sub("", value)):
        return "Please enter a valid phone number (e.g., +1 555-123-4567)"
    return None


def _check_email(value: Any) -> str | None:
    if _is_blank(value):
        return "Email address is required"
    if not isinstance(value, str) or not EMAIL_PATTERN.fullmatch(value):
        return "Please enter a valid email address"
    return None


def _check_address(value: Any) -> str | None:
    if _is_blank(value):
        return "Address is required"
    if not isinstance(value, str) or len(value.strip()) < MIN_ADDRESS_LENGTH:
        return "Please enter a complete address"
    return None


def validate_patient_data(
    data: Any,
    today: date | None = None,
    partial: bool = False,
) -> ValidationResult:
    """Check a candidate patient record against the field rules.

    With ``partial=True`` only the top-level fields present in ``data`` are
    checked; a present ``contactInfo`` is checked in full since it replaces
    the stored one wholesale.
    """
    today = today or date.today()
    if not isinstance(data, dict):
        data = {}
    contact = data.get("contactInfo")
    if not isinstance(contact, dict):
        contact = {}

    checks = {
        "patientId": ("patientId", lambda: _check_patient_id(data.get("patientId"))),
        "name": ("name", lambda: _check_name(data.get("name"))),
        "dateOfBirth": ("dateOfBirth", lambda: _check_date_of_birth(data.get("dateOfBirth"), today)),
        "gender": ("gender", lambda: _check_gender(data.get("gender"))),
        "phone": ("contactInfo", lambda: _check_phone(contact.get("phone"))),
        "email": ("contactInfo", lambda: _check_email(contact.get("email"))),
        "address": ("contactInfo", lambda: _check_address(contact.get("address"))),
    }

    result = ValidationResult()
    for error_key, (source_field, check) in checks.items():
        if partial and source_field not in data:
            continue
        message = check()
        if message:
            result.errors[error_key] = message
    return result


def _schema_errors(exc: SchemaError) -> dict[str, str]:
    errors = {}
    for error in exc.errors():
        key = ".".join(str(part) for part in error["loc"]) or "body"
        errors.setdefault(key, error["msg"])
    return errors


def parse_patient_create(data: Any, today: date | None = None) -> PatientCreate:
    """Validate a raw create body and build the typed record.

    Raises ValidationError carrying every rule violation.
    """
    result = validate_patient_data(data, today)
    if not result.is_valid:
        raise ValidationError(result.errors)
    try:
        return PatientCreate.model_validate(data)
    except SchemaError as exc:
        raise ValidationError(_schema_errors(exc)) from exc


def parse_patient_update(data: Any, today: date | None = None) -> PatientUpdate:
    if not isinstance(data, dict):
        raise ValidationError({"body": "Update body must be an object"})
    result = validate_patient_data(data, today, partial=True)
    if not result.is_valid:
        raise ValidationError(result.errors)
    try:
        return PatientUpdate.model_validate(data)
    except SchemaError as exc:
        raise ValidationError(_schema_errors(exc)) from exc

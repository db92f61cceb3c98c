"""Error kinds surfaced by the patient record service.

Each error carries the HTTP status it maps to; ``medrecords.main`` renders
them as ``{"error": message}`` responses.
"""


class PatientRecordError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PatientRecordError):
    """Malformed or missing input, reported per field."""

    status_code = 400

    def __init__(self, errors: dict[str, str], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.errors = errors


class NotFound(PatientRecordError):
    status_code = 404


class Conflict(PatientRecordError):
    # Uniqueness failures share the 400 status with validation failures
    status_code = 400


class StorageError(PatientRecordError):
    """The underlying store is unavailable or rejected the operation."""

    status_code = 500


# What callers see for any storage failure; the detail only goes to the log
STORAGE_ERROR_MESSAGE = "Internal storage error"

from pydantic import Field

from medrecords.models.audit import AuditLogEntry
from medrecords.models.base import CamelModel
from medrecords.models.patient import Patient


class AgeStatistics(CamelModel):
    avg_age: float = 0
    min_age: int = 0
    max_age: int = 0


class GenderCount(CamelModel):
    gender: str | None = Field(default=None, alias="_id")
    count: int


class AllergyCount(CamelModel):
    allergy: str = Field(alias="_id")
    count: int


class PatientStats(CamelModel):
    total_patients: int
    age_statistics: AgeStatistics = AgeStatistics()
    gender_distribution: list[GenderCount] = []
    common_allergies: list[AllergyCount] = []
    recent_activity: list[AuditLogEntry] = []


class QueryPerformance(CamelModel):
    total_docs_examined: int
    total_docs_returned: int
    execution_time_millis: float
    indexes_used: list[str] | str


class QueryOptimizationReport(CamelModel):
    """Search results plus a cost diagnostic for the any-field search."""

    results: list[Patient]
    performance: QueryPerformance
    suggestions: list[str]
    query_plan: list[str] = []

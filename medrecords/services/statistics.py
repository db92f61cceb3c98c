"""Read-only reporting over stored patients and the audit log."""

import logging
from datetime import date

from medrecords.database import DatabaseAdapter
from medrecords.models.stats import AgeStatistics, AllergyCount, GenderCount, PatientStats
from medrecords.services.audit_log import AuditLog
from medrecords.services.validation import calculate_age, parse_date

logger = logging.getLogger(__name__)

TOP_ALLERGIES_LIMIT = 10


def compute_age_statistics(dates_of_birth: list[str], today: date | None = None) -> AgeStatistics:
    """Mean/min/max age over the parsable dates of birth."""
    ages = []
    for value in dates_of_birth:
        birth = parse_date(value)
        if birth is None:
            logger.debug("Skipping unparsable date of birth %r", value)
            continue
        ages.append(calculate_age(birth, today))
    if not ages:
        return AgeStatistics()
    return AgeStatistics(
        avg_age=round(sum(ages) / len(ages), 1),
        min_age=min(ages),
        max_age=max(ages),
    )


async def get_patient_stats(db: DatabaseAdapter, today: date | None = None) -> PatientStats:
    async with db.transaction():
        return await _collect_stats(db, today)


async def _collect_stats(db: DatabaseAdapter, today: date | None) -> PatientStats:
    total_row = await db.fetch_one("SELECT COUNT(*) AS count FROM patients")
    total = total_row["count"] if total_row else 0

    dob_rows = await db.fetch_all("SELECT date_of_birth FROM patients")
    age_stats = compute_age_statistics([row["date_of_birth"] for row in dob_rows], today)

    gender_rows = await db.fetch_all(
        "SELECT gender, COUNT(*) AS count FROM patients "
        "GROUP BY gender ORDER BY count DESC, gender ASC"
    )

    # Exact, case-sensitive match per array entry
    allergy_rows = await db.fetch_all(
        "SELECT json_each.value AS allergy, COUNT(*) AS count "
        "FROM patients, json_each(patients.allergies) "
        "GROUP BY json_each.value ORDER BY count DESC, allergy ASC LIMIT ?",
        (TOP_ALLERGIES_LIMIT,),
    )

    recent = await AuditLog(db).recent()

    return PatientStats(
        total_patients=total,
        age_statistics=age_stats,
        gender_distribution=[
            GenderCount(gender=row["gender"], count=row["count"]) for row in gender_rows
        ],
        common_allergies=[
            AllergyCount(allergy=row["allergy"], count=row["count"]) for row in allergy_rows
        ],
        recent_activity=recent,
    )

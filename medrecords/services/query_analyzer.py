"""Diagnostics for the any-field patient search.

Runs the search once under ``EXPLAIN QUERY PLAN`` and once for real, and
turns the plan into rough cost figures plus tuning suggestions. The figures
are estimates for operators and have no bearing on search results.
"""

import logging
import re
import time

from medrecords.config import OPTIMIZE_RESULT_LIMIT, SLOW_QUERY_MILLIS
from medrecords.database import DatabaseAdapter
from medrecords.errors import ValidationError
from medrecords.models.stats import QueryOptimizationReport, QueryPerformance
from medrecords.services.patient_repository import row_to_patient
from medrecords.services.query_builder import ORDER_BY, SEARCHABLE_FIELDS, build_filter

logger = logging.getLogger(__name__)

INDEX_PATTERN = re.compile(r"USING (?:COVERING )?INDEX (\w+)")
FULL_SCAN_PATTERN = re.compile(r"^SCAN (?:TABLE )?patients\b")
NO_INDEXES = "No specific indexes reported"


def indexes_in_plan(plan: list[str]) -> list[str]:
    found = []
    for detail in plan:
        for name in INDEX_PATTERN.findall(detail):
            if name not in found:
                found.append(name)
    return found


def is_full_scan(plan: list[str]) -> bool:
    return any(FULL_SCAN_PATTERN.match(detail) for detail in plan)


def generate_suggestions(performance: QueryPerformance) -> list[str]:
    suggestions = []
    if performance.total_docs_examined > performance.total_docs_returned * 10:
        suggestions.append("Consider adding more specific indexes to reduce document examination")
    if performance.execution_time_millis > SLOW_QUERY_MILLIS:
        suggestions.append("Query execution time is high, consider optimizing indexes")
    if not performance.indexes_used or performance.indexes_used == NO_INDEXES:
        suggestions.append("No indexes were used, consider creating appropriate indexes")
    if not suggestions:
        suggestions.append("Query performance looks good!")
    return suggestions


async def analyze_search(db: DatabaseAdapter, query: str) -> QueryOptimizationReport:
    if not query:
        raise ValidationError({"query": "Query parameter is required"}, "Query parameter is required")

    where, params = build_filter(query, SEARCHABLE_FIELDS)
    sql = f"SELECT * FROM patients WHERE {where} ORDER BY {ORDER_BY} LIMIT ?"
    bound = (*params, OPTIMIZE_RESULT_LIMIT)

    async with db.transaction():
        plan_rows = await db.fetch_all(f"EXPLAIN QUERY PLAN {sql}", bound)
        plan = [row["detail"] for row in plan_rows]

        started = time.perf_counter()
        rows = await db.fetch_all(sql, bound)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

        if is_full_scan(plan):
            count_row = await db.fetch_one("SELECT COUNT(*) AS count FROM patients")
            examined = count_row["count"] if count_row else 0
        else:
            examined = len(rows)

    indexes = indexes_in_plan(plan)
    performance = QueryPerformance(
        total_docs_examined=examined,
        total_docs_returned=len(rows),
        execution_time_millis=elapsed_ms,
        indexes_used=indexes or NO_INDEXES,
    )
    logger.info(
        "Analyzed search %r: examined=%d returned=%d time=%.3fms",
        query, examined, len(rows), elapsed_ms,
    )
    return QueryOptimizationReport(
        results=[row_to_patient(row) for row in rows],
        performance=performance,
        suggestions=generate_suggestions(performance),
        query_plan=plan,
    )

"""Translate search parameters into an SQL filter plus pagination.

Searches are case-insensitive literal substring matches. Both sides are
folded with the ``casefold`` SQL function registered by ``open_db`` (SQLite's
own ``LIKE`` only folds ASCII). Scalar fields are matched on their column;
array fields (stored as JSON arrays) match when any element contains the term.
"""

import math
from dataclasses import dataclass

from medrecords.errors import ValidationError

# Wire field name -> column
SCALAR_FIELDS = {
    "name": "name",
    "patientId": "patient_id",
}
ARRAY_FIELDS = {
    "allergies": "allergies",
    "medicalHistory": "medical_history",
}
SEARCHABLE_FIELDS = (*SCALAR_FIELDS, *ARRAY_FIELDS)

# Used when the requested field is not recognized
FALLBACK_FIELDS = ("name", "patientId")

# Newest first; rowid keeps ties in insertion order so pages are stable
ORDER_BY = "created_at DESC, rowid DESC"


@dataclass(frozen=True)
class SearchQuery:
    where: str
    params: tuple[str, ...]
    skip: int
    take: int
    page: int
    fields: tuple[str, ...] = ()

    def where_clause(self) -> str:
        return f" WHERE {self.where}" if self.where else ""


def _contains(expression: str) -> str:
    # instr() has no wildcards, so the term always matches literally
    return f"instr(casefold({expression}), ?) > 0"


def _field_condition(field: str) -> str:
    if field in SCALAR_FIELDS:
        return _contains(SCALAR_FIELDS[field])
    column = ARRAY_FIELDS[field]
    return (
        f"EXISTS (SELECT 1 FROM json_each(patients.{column}) "
        f"WHERE {_contains('json_each.value')})"
    )


def build_filter(search: str, fields: tuple[str, ...] | list[str]) -> tuple[str, tuple[str, ...]]:
    """Build an OR filter matching ``search`` in any of ``fields``.

    Returns ``("", ())`` when the search term is empty (match everything).
    """
    if not search:
        return "", ()
    term = search.casefold()
    conditions = [_field_condition(f) for f in fields]
    where = conditions[0] if len(conditions) == 1 else "(" + " OR ".join(conditions) + ")"
    return where, tuple(term for _ in conditions)


def resolve_fields(field: str | None) -> tuple[str, ...]:
    if field in SEARCHABLE_FIELDS:
        return (field,)
    return FALLBACK_FIELDS


def build_search_query(search: str | None, field: str | None, page: int, limit: int) -> SearchQuery:
    errors = {}
    if page < 1:
        errors["page"] = "Page must be 1 or greater"
    if limit < 1:
        errors["limit"] = "Limit must be 1 or greater"
    if errors:
        raise ValidationError(errors, "Invalid pagination parameters")

    search = search or ""
    fields = resolve_fields(field) if search else ()
    where, params = build_filter(search, fields)
    return SearchQuery(
        where=where,
        params=params,
        skip=(page - 1) * limit,
        take=limit,
        page=page,
        fields=fields,
    )


def total_pages(total: int, limit: int) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / limit)

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import AsyncIterator, Iterable, Sequence
from urllib.parse import urlparse

import aiosqlite
from fastapi import Request

from medrecords.config import DATABASE_PATH, DATABASE_URL, SEED_DEMO_PATIENTS

logger = logging.getLogger(__name__)


class DatabaseAdapter:
    engine: str

    async def execute(self, query: str, params: Sequence | None = None) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_one(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def fetch_all(self, query: str, params: Sequence | None = None):  # pragma: no cover - interface
        raise NotImplementedError

    async def commit(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def rollback(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def executescript(self, script: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def transaction(self):  # pragma: no cover - interface
        raise NotImplementedError


@dataclass
class SQLiteAdapter(DatabaseAdapter):
    conn: aiosqlite.Connection
    engine: str = "sqlite"
    # Every request shares one connection, so a write and its commit or
    # rollback must not interleave with another request's write.
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SQLiteAdapter"]:
        """Hold the connection for one unit of work. Not reentrant."""
        async with self.lock:
            yield self

    async def execute(self, query: str, params: Sequence | None = None) -> int:
        """Run a statement and return the number of rows it changed."""
        cursor = await self.conn.execute(query, params or ())
        return cursor.rowcount

    async def executemany(self, query: str, seq_params: Iterable[Sequence]) -> None:
        await self.conn.executemany(query, seq_params)

    async def fetch_one(self, query: str, params: Sequence | None = None):
        cursor = await self.conn.execute(query, params or ())
        return await cursor.fetchone()

    async def fetch_all(self, query: str, params: Sequence | None = None):
        cursor = await self.conn.execute(query, params or ())
        return await cursor.fetchall()

    async def commit(self) -> None:
        await self.conn.commit()

    async def rollback(self) -> None:
        await self.conn.rollback()

    async def close(self) -> None:
        await self.conn.close()

    async def executescript(self, script: str) -> None:
        await self.conn.executescript(script)


def resolve_database_path(url: str = "", default: str = DATABASE_PATH) -> str:
    """Pick the SQLite file from an optional ``sqlite:///`` URL."""
    if not url:
        return default
    if not url.startswith("sqlite"):
        raise RuntimeError(
            f"Unsupported DATABASE_URL scheme: {urlparse(url).scheme!r}. "
            "Only sqlite:/// URLs are supported."
        )
    return _sqlite_path_from_url(url) or default


def _sqlite_path_from_url(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path or ""
    if not path or path == "/":
        return ""
    # sqlite:////absolute/path.db -> keep absolute path
    if url.startswith("sqlite:////"):
        return "/" + path.lstrip("/")
    # sqlite:///relative.db -> strip leading slash
    if path.startswith("/"):
        return path[1:]
    return path


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


async def open_db(path: str | None = None) -> SQLiteAdapter:
    """Open a store handle. The caller owns it and must ``close_db`` it."""
    path = path or resolve_database_path(DATABASE_URL)
    conn = await aiosqlite.connect(path)
    conn.row_factory = aiosqlite.Row
    # SQLite's own LIKE and lower() only fold ASCII letters
    await conn.create_function("casefold", 1, _casefold, deterministic=True)
    logger.info("Connected to SQLite database at %s", path)
    return SQLiteAdapter(conn)


async def close_db(db: DatabaseAdapter | None) -> None:
    if db is not None:
        await db.close()


def get_db(request: Request) -> DatabaseAdapter:
    """FastAPI dependency returning the handle opened by the app lifespan."""
    return request.app.state.db


SQLITE_SCHEMA = """
    CREATE TABLE IF NOT EXISTS patients (
        id TEXT PRIMARY KEY,
        patient_id TEXT NOT NULL,
        name TEXT NOT NULL,
        date_of_birth TEXT NOT NULL,
        gender TEXT NOT NULL,
        phone TEXT NOT NULL DEFAULT '',
        email TEXT NOT NULL DEFAULT '',
        address TEXT NOT NULL DEFAULT '',
        allergies TEXT NOT NULL DEFAULT '[]',
        medical_history TEXT NOT NULL DEFAULT '[]',
        current_prescriptions TEXT NOT NULL DEFAULT '[]',
        doctor_notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE UNIQUE INDEX IF NOT EXISTS idx_patients_patient_id ON patients (patient_id);
    CREATE UNIQUE INDEX IF NOT EXISTS idx_patients_email ON patients (email) WHERE email != '';
    CREATE INDEX IF NOT EXISTS idx_patients_name ON patients (name);
    CREATE INDEX IF NOT EXISTS idx_patients_created_at ON patients (created_at DESC);

    CREATE TABLE IF NOT EXISTS audit_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        action TEXT NOT NULL,
        patient_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        details TEXT NOT NULL DEFAULT '{}'
    );

    CREATE INDEX IF NOT EXISTS idx_audit_logs_timestamp ON audit_logs (timestamp DESC);
"""


async def init_db(db: DatabaseAdapter, seed: bool = SEED_DEMO_PATIENTS) -> None:
    """Create tables and indexes; optionally seed demo patients."""
    await db.executescript(SQLITE_SCHEMA)
    await db.commit()

    if seed:
        await _seed_demo_patients(db)


DEMO_PATIENTS = [
    {
        "patient_id": "P001",
        "name": "John David Smith",
        "date_of_birth": "1979-03-14",
        "gender": "Male",
        "phone": "+1 555-201-4433",
        "email": "john.smith@example.com",
        "address": "742 Evergreen Terrace, Springfield",
        "allergies": ["Penicillin"],
        "medical_history": ["Hypertension", "Diabetes mellitus type 2"],
        "current_prescriptions": ["Metformin 500mg", "Lisinopril 10mg"],
        "doctor_notes": "Monitor blood pressure at every visit.",
    },
    {
        "patient_id": "P002",
        "name": "Maria Lopez",
        "date_of_birth": "1956-11-02",
        "gender": "Female",
        "phone": "+1 555-310-8821",
        "email": "maria.lopez@example.com",
        "address": "229 Lakeview Drive, Oakridge",
        "allergies": ["Penicillin", "Sulfa drugs"],
        "medical_history": ["Atrial fibrillation", "Hypertension"],
        "current_prescriptions": ["Apixaban 5mg"],
        "doctor_notes": "",
    },
    {
        "patient_id": "P003",
        "name": "Ethan Brooks",
        "date_of_birth": "2001-07-21",
        "gender": "Male",
        "phone": "(555) 418-0097",
        "email": "ethan.brooks@example.com",
        "address": "91 Riverbend Ave, Lakeview",
        "allergies": [],
        "medical_history": ["Asthma"],
        "current_prescriptions": ["Albuterol inhaler"],
        "doctor_notes": "Follow up on inhaler technique.",
    },
]


async def _seed_demo_patients(db: DatabaseAdapter) -> None:
    """Seed demo patients for UI previews."""
    now = datetime.now(UTC)

    placeholders = ", ".join("?" for _ in DEMO_PATIENTS)
    existing_rows = await db.fetch_all(
        f"SELECT patient_id FROM patients WHERE patient_id IN ({placeholders})",
        tuple(p["patient_id"] for p in DEMO_PATIENTS),
    )
    existing = {row["patient_id"] for row in existing_rows}

    rows = []
    for offset, patient in enumerate(DEMO_PATIENTS):
        if patient["patient_id"] in existing:
            continue
        created = (now - timedelta(minutes=10 * (len(DEMO_PATIENTS) - offset))).isoformat()
        rows.append((
            uuid.uuid4().hex,
            patient["patient_id"],
            patient["name"],
            patient["date_of_birth"],
            patient["gender"],
            patient["phone"],
            patient["email"],
            patient["address"],
            json.dumps(patient["allergies"]),
            json.dumps(patient["medical_history"]),
            json.dumps(patient["current_prescriptions"]),
            patient["doctor_notes"],
            created,
            created,
        ))
    if not rows:
        return

    await db.executemany(
        """INSERT INTO patients (
            id, patient_id, name, date_of_birth, gender, phone, email, address,
            allergies, medical_history, current_prescriptions, doctor_notes,
            created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        rows,
    )
    await db.commit()
    logger.info("Seeded %d demo patients", len(rows))

import os

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# In-memory DB and no demo data for tests
os.environ["DATABASE_PATH"] = ":memory:"
os.environ["DATABASE_URL"] = ""
os.environ["SEED_DEMO_PATIENTS"] = "false"

from medrecords.database import close_db, get_db, init_db, open_db
from medrecords.main import app
from medrecords.services.patient_repository import PatientRepository
from medrecords.services.validation import parse_patient_create


def make_patient_data(**overrides):
    """A valid create body; override top-level keys as needed."""
    data = {
        "patientId": "P001",
        "name": "Jane Doe",
        "dateOfBirth": "1985-04-12",
        "gender": "Female",
        "contactInfo": {
            "phone": "+1 555-123-4567",
            "email": "jane.doe@example.com",
            "address": "12 Harbour Street, Portsmouth",
        },
        "allergies": ["Penicillin"],
        "medicalHistory": ["Asthma"],
        "currentPrescriptions": ["Salbutamol inhaler"],
        "doctorNotes": "Annual review due.",
    }
    data.update(overrides)
    return data


@pytest.fixture
def patient_data():
    return make_patient_data()


@pytest_asyncio.fixture
async def db():
    """Provide a fresh in-memory database for each test."""
    database = await open_db(":memory:")
    await init_db(database, seed=False)
    yield database
    await close_db(database)


@pytest_asyncio.fixture
async def repo(db):
    return PatientRepository(db)


@pytest_asyncio.fixture
async def create_patient(repo):
    """Create a patient from a raw body and return its storage id."""

    async def _create(**overrides):
        return await repo.create(parse_patient_create(make_patient_data(**overrides)))

    return _create


@pytest.fixture
def client():
    """Sync client running the app lifespan against its own in-memory store."""
    with TestClient(app) as c:
        yield c


@pytest_asyncio.fixture
async def async_client(db):
    """Provide an async httpx client for async HTTP tests."""
    app.dependency_overrides[get_db] = lambda: db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def patient_factory():
    return make_patient_data

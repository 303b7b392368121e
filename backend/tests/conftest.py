import os

os.environ["ASYNC_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-secret"

import uuid
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from therapia import config
from therapia.api.routers import invoices as invoices_router
from therapia.api.routers import questionnaires as questionnaires_router
from therapia.api.routers import therapist as therapist_router
from therapia.db import Base, get_db
from therapia.main import app
from therapia.models import Patient, Therapist


def make_token(user_id: uuid.UUID, email: str = "user@example.com") -> str:
    return jwt.encode(
        {"sub": str(user_id), "aud": "authenticated", "email": email},
        config.SUPABASE_JWT_SECRET,
        algorithm="HS256",
    )


def auth(user_id: uuid.UUID, email: str = "user@example.com") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "therapia-test.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def db(db_path):
    """Sync session on the same file, for seeding and for checking what the API wrote."""
    engine = create_engine(f"sqlite:///{db_path}")
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture
def client(db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    TestSession = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async def override_get_db():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def seed(db):
    therapist_id = uuid.uuid4()
    patient_id = uuid.uuid4()
    patient_user_id = uuid.uuid4()
    db.add(Therapist(
        user_id=therapist_id,
        full_name="Dott.ssa Giulia Rossi",
        email="giulia@studio.it",
        therapeutic_orientation="Cognitivo-comportamentale",
        address="Via Roma 1",
        city="Milano",
        postal_code="20100",
        province="MI",
        vat_number="12345678901",
        registration_number="OPL 1234",
        iban="IT60X0542811101000000123456",
    ))
    db.add(Patient(
        id=patient_id,
        therapist_user_id=therapist_id,
        patient_user_id=patient_user_id,
        display_name="Mario Bianchi",
        email="mario@example.com",
        fiscal_code="BNCMRA80A01F205X",
        city="Milano",
        issues="Ansia da prestazione",
        goals="Gestire gli attacchi di panico",
        rate_individual=Decimal("70.00"),
        rate_couple=Decimal("90.00"),
    ))
    db.commit()
    return SimpleNamespace(
        therapist_id=therapist_id,
        patient_id=patient_id,
        patient_user_id=patient_user_id,
        headers=auth(therapist_id, "giulia@studio.it"),
        patient_headers=auth(patient_user_id, "mario@example.com"),
    )


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    async def fake_send_email(to, subject, html, *, to_name=None, attachments=None):
        sent.append({
            "to": to, "subject": subject, "html": html,
            "to_name": to_name, "attachments": attachments or [],
        })

    for module in (questionnaires_router, therapist_router, invoices_router):
        monkeypatch.setattr(module, "send_email", fake_send_email)
    return sent


@pytest.fixture
def mock_http(monkeypatch):
    """Route every httpx.AsyncClient through a handler; returns the list of seen requests."""
    real_client = httpx.AsyncClient
    state = SimpleNamespace(requests=[], handler=None)

    def transport(request):
        state.requests.append(request)
        return state.handler(request)

    monkeypatch.setattr(
        httpx, "AsyncClient",
        lambda **kw: real_client(transport=httpx.MockTransport(transport), **kw),
    )
    return state


@pytest.fixture
def other_headers():
    """A signed-in therapist who owns none of the seeded data."""
    return auth(uuid.uuid4(), "altro@studio.it")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import get_current_user
from app.database import Base, enable_sqlite_foreign_keys, get_db
from app.main import app
from app.models import Patient, PricingPlan, PricingType, Professional
from app.rate_limiter import delete_rate_limiter

# A Monday, far enough ahead to never collide with "now"
BASE_TIME = datetime(2030, 1, 7, 10, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_professional(db):
    def _make(uid: str = "firebase-uid-1", email: str = "therapist@example.com"):
        professional = Professional(firebase_uid=uid, email=email, full_name="Dr. Test")
        db.add(professional)
        db.commit()
        return professional

    return _make


@pytest.fixture
def make_patient(db):
    def _make(owner: Professional, name: str = "Patient One"):
        email = f"{name.lower().replace(' ', '.')}@example.com"
        patient = Patient(owner_id=owner.id, name=name, email=email)
        db.add(patient)
        db.commit()
        return patient

    return _make


@pytest.fixture
def make_pricing_plan(db):
    def _make(patient: Patient, session_price: float = 150.0, **kwargs):
        plan = PricingPlan(
            patient_id=patient.id,
            type=kwargs.pop("type", PricingType.SESSION),
            session_price=session_price,
            active=True,
            **kwargs,
        )
        db.add(plan)
        db.commit()
        return plan

    return _make


@pytest.fixture
def professional(make_professional):
    return make_professional()


@pytest.fixture
def patient(make_patient, professional):
    return make_patient(professional)


@pytest.fixture
def client(db, professional):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_user] = lambda: professional
    app.dependency_overrides[delete_rate_limiter] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()

"""Tests for serialized, all-or-nothing scheduling transactions"""

import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from app.database import Base, enable_sqlite_foreign_keys
from app.domain.payments.sync import PaymentSynchronizer
from app.domain.scheduling.schemas import SessionCreate
from app.domain.scheduling.service import SessionService
from app.errors import ConflictError, StorageError
from app.models import Patient, Payment, Professional, RecurrencePattern, TherapySession

from .conftest import BASE_TIME


@pytest.fixture
def file_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'scheduling.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


def test_concurrent_bookings_of_one_slot_admit_exactly_one(file_engine):
    SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)

    setup = SessionFactory()
    owner = Professional(firebase_uid="firebase-uid-race", email="race@example.com")
    setup.add(owner)
    setup.commit()
    patient = Patient(owner_id=owner.id, name="Race Patient")
    setup.add(patient)
    setup.commit()
    owner_id, patient_id = owner.id, patient.id
    setup.close()

    barrier = threading.Barrier(2)
    outcomes: list = []
    outcomes_lock = threading.Lock()

    def book():
        db = SessionFactory()
        try:
            barrier.wait()
            data = SessionCreate(patientId=patient_id, dateTime=BASE_TIME)
            SessionService(db).create_session(owner_id, data)
            result = "created"
        except ConflictError as e:
            result = e
        finally:
            db.close()
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=book) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert outcomes.count("created") == 1
    conflicts = [o for o in outcomes if isinstance(o, ConflictError)]
    assert len(conflicts) == 1
    assert conflicts[0].conflicts == [BASE_TIME]

    check = SessionFactory()
    assert check.query(TherapySession).count() == 1
    assert check.query(Payment).count() == 1
    check.close()


def test_storage_failure_mid_batch_leaves_nothing(db, professional, patient, monkeypatch):
    create_for_session = PaymentSynchronizer.create_for_session
    calls = {"count": 0}

    def failing_create(self, session, amount, **kwargs):
        calls["count"] += 1
        if calls["count"] == 3:
            raise OperationalError("INSERT INTO payments", {}, Exception("disk I/O error"))
        return create_for_session(self, session, amount, **kwargs)

    monkeypatch.setattr(PaymentSynchronizer, "create_for_session", failing_create)

    data = SessionCreate(
        patientId=patient.id,
        dateTime=BASE_TIME,
        customSessionPrice=100,
        isRecurring=True,
        recurrencePattern=RecurrencePattern.WEEKLY,
        recurrenceOccurrences=6,
    )

    with pytest.raises(StorageError):
        SessionService(db).create_session(professional.id, data)

    assert calls["count"] == 3
    assert db.query(TherapySession).count() == 0
    assert db.query(Payment).count() == 0

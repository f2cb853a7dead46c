"""Tests for package sales and consumption tracking"""

from datetime import timedelta

import pytest

from app.domain.packages.schemas import AddSessionsRequest, PackageCreate, PackageUpdate
from app.domain.packages.service import PackageService
from app.domain.packages.stats import compute_package_stats
from app.domain.payments.schemas import PaymentUpdate
from app.domain.payments.service import PaymentService
from app.domain.scheduling.schemas import SessionCreate
from app.domain.scheduling.service import SessionService
from app.errors import CapacityError, ConflictError, InvariantViolationError, ValidationError
from app.models import (
    PackageStatus,
    Payment,
    PaymentStatus,
    PricingPlan,
    PricingType,
    SessionPackage,
    SessionStatus,
    TherapySession,
)

from .conftest import BASE_TIME


@pytest.fixture
def service(db):
    return PackageService(db)


def slots(count, start=BASE_TIME, week_offset=0):
    return [
        {"dateTime": start + timedelta(weeks=week_offset + i), "duration": 50}
        for i in range(count)
    ]


def sell(service, owner, patient, total=10, booked=7, price=1000.0, **kwargs):
    data = PackageCreate(
        patientId=patient.id,
        pricingType=PricingType.PACKAGE,
        packagePrice=price,
        totalSessions=total,
        sessions=slots(booked),
        **kwargs,
    )
    return service.create_package(owner.id, data)


def test_create_package_books_sessions_in_order(db, service, professional, patient):
    package = sell(service, professional, patient)

    assert package.status == PackageStatus.ACTIVE
    assert package.total_sessions == 10
    assert package.price_per_session == 100.0
    assert package.name == f"Package - {BASE_TIME:%d/%m/%Y}"
    assert [s.package_order for s in package.sessions] == list(range(1, 8))
    assert all(s.payment.amount == 100.0 for s in package.sessions)
    assert all(s.payment.status == PaymentStatus.PENDING for s in package.sessions)


def test_create_package_replaces_active_pricing_plan(
    db, service, professional, patient, make_pricing_plan
):
    old_plan = make_pricing_plan(patient, session_price=200.0)

    package = sell(service, professional, patient)

    db.refresh(old_plan)
    assert old_plan.active is False
    plan = db.query(PricingPlan).filter(PricingPlan.id == package.pricing_plan_id).one()
    assert plan.active is True
    assert plan.per_session_rate == 100.0


def test_session_priced_package_holds_listed_sessions(service, professional, patient):
    data = PackageCreate(
        patientId=patient.id,
        pricingType=PricingType.SESSION,
        sessionPrice=180.0,
        sessions=slots(4),
        name="Spring block",
    )

    package = service.create_package(professional.id, data)

    assert package.total_sessions == 4
    assert package.price_per_session == 180.0
    assert package.name == "Spring block"


def test_create_package_rejects_more_sessions_than_slots(db, service, professional, patient):
    with pytest.raises(CapacityError):
        sell(service, professional, patient, total=3, booked=4)

    assert db.query(SessionPackage).count() == 0


def test_create_package_conflict_reports_every_slot(db, service, professional, patient):
    SessionService(db).create_session(
        professional.id,
        SessionCreate(patientId=patient.id, dateTime=BASE_TIME + timedelta(weeks=2, minutes=10)),
    )

    with pytest.raises(ConflictError) as exc_info:
        sell(service, professional, patient)

    assert exc_info.value.conflicts == [BASE_TIME + timedelta(weeks=2)]
    assert db.query(SessionPackage).count() == 0
    assert db.query(PricingPlan).count() == 0


def test_create_package_rejects_overlapping_slots_in_one_request(service, professional, patient):
    data = PackageCreate(
        patientId=patient.id,
        pricingType=PricingType.SESSION,
        sessionPrice=100.0,
        sessions=[
            {"dateTime": BASE_TIME},
            {"dateTime": BASE_TIME + timedelta(minutes=30)},
        ],
    )

    with pytest.raises(ConflictError) as exc_info:
        service.create_package(professional.id, data)

    assert exc_info.value.conflicts == [BASE_TIME + timedelta(minutes=30)]


def test_capacity_ten_with_seven_booked(db, service, professional, patient):
    package = sell(service, professional, patient, total=10, booked=7)

    with pytest.raises(CapacityError) as exc_info:
        service.add_package_sessions(
            professional.id, package.id, AddSessionsRequest(sessions=slots(4, week_offset=7))
        )
    assert exc_info.value.remaining_slots == 3
    assert db.query(TherapySession).count() == 7

    package, created = service.add_package_sessions(
        professional.id, package.id, AddSessionsRequest(sessions=slots(3, week_offset=7))
    )

    assert len(created) == 3
    assert [s.package_order for s in created] == [8, 9, 10]
    assert compute_package_stats(package)["remainingSlots"] == 0


def test_added_sessions_copy_receipt_of_paid_package(service, professional, patient):
    package = sell(
        service,
        professional,
        patient,
        isPaid=True,
        receiptUrl="https://files.example.com/package.pdf",
    )

    _, created = service.add_package_sessions(
        professional.id, package.id, AddSessionsRequest(sessions=slots(1, week_offset=7))
    )

    payment = created[0].payment
    assert payment.status == PaymentStatus.PAID
    assert payment.paid_at is not None
    assert payment.receipt_url == "https://files.example.com/package.pdf"


def test_added_sessions_use_explicit_receipt(service, professional, patient):
    package = sell(service, professional, patient)

    _, created = service.add_package_sessions(
        professional.id,
        package.id,
        AddSessionsRequest(
            sessions=slots(1, week_offset=7),
            copyReceipt=True,
            receiptUrl="https://files.example.com/extra.pdf",
        ),
    )

    assert created[0].payment.status == PaymentStatus.PAID
    assert created[0].payment.receipt_url == "https://files.example.com/extra.pdf"


def test_inactive_package_does_not_accept_sessions(service, professional, patient):
    package = sell(service, professional, patient)
    service.update_package(professional.id, package.id, PackageUpdate(status=PackageStatus.CANCELLED))

    with pytest.raises(ValidationError):
        service.add_package_sessions(
            professional.id, package.id, AddSessionsRequest(sessions=slots(1, week_offset=7))
        )


def test_stats_count_no_show_as_consumed(db, service, professional, patient):
    package = sell(service, professional, patient, total=5, booked=4)
    sessions = SessionService(db)
    sessions.change_session_status(professional.id, package.sessions[0].id, SessionStatus.COMPLETED)
    sessions.change_session_status(professional.id, package.sessions[1].id, SessionStatus.NO_SHOW)
    sessions.change_session_status(professional.id, package.sessions[2].id, SessionStatus.CANCELLED)

    stats = service.package_stats(professional.id, package.id)

    assert stats["completed"] == 1
    assert stats["noShow"] == 1
    assert stats["cancelled"] == 1
    assert stats["scheduled"] == 1
    assert stats["consumed"] == 2
    assert stats["remainingSlots"] == 1
    assert stats["totalScheduled"] == 4
    assert stats["totalPending"] == 2
    assert stats["amountPending"] == 400.0


def test_package_completes_when_every_slot_is_completed(db, service, professional, patient):
    package = sell(service, professional, patient, total=2, booked=2)
    sessions = SessionService(db)

    sessions.change_session_status(professional.id, package.sessions[0].id, SessionStatus.COMPLETED)
    db.refresh(package)
    assert package.status == PackageStatus.ACTIVE

    sessions.change_session_status(professional.id, package.sessions[1].id, SessionStatus.COMPLETED)
    db.refresh(package)
    assert package.status == PackageStatus.COMPLETED


def test_package_with_no_show_completes_once_every_slot_is_used(db, service, professional, patient):
    package = sell(service, professional, patient, total=2, booked=2)
    sessions = SessionService(db)

    sessions.change_session_status(professional.id, package.sessions[0].id, SessionStatus.COMPLETED)
    sessions.change_session_status(professional.id, package.sessions[1].id, SessionStatus.NO_SHOW)

    db.refresh(package)
    assert package.status == PackageStatus.COMPLETED
    stats = compute_package_stats(package)
    assert stats["consumed"] == 2
    assert stats["remainingSlots"] == 0


def test_package_without_completed_sessions_finalizes_as_cancelled(
    db, service, professional, patient
):
    package = sell(service, professional, patient, total=2, booked=2)
    sessions = SessionService(db)

    sessions.change_session_status(professional.id, package.sessions[0].id, SessionStatus.NO_SHOW)
    sessions.change_session_status(professional.id, package.sessions[1].id, SessionStatus.CANCELLED)

    db.refresh(package)
    assert package.status == PackageStatus.CANCELLED


def test_package_with_free_slots_stays_active(db, service, professional, patient):
    package = sell(service, professional, patient, total=3, booked=2)
    sessions = SessionService(db)

    for session in list(package.sessions):
        sessions.change_session_status(professional.id, session.id, SessionStatus.COMPLETED)

    db.refresh(package)
    assert package.status == PackageStatus.ACTIVE


def test_cancelling_package_cancels_pending_sessions(db, service, professional, patient):
    package = sell(service, professional, patient, total=3, booked=3)
    SessionService(db).change_session_status(
        professional.id, package.sessions[0].id, SessionStatus.COMPLETED
    )

    service.update_package(professional.id, package.id, PackageUpdate(status=PackageStatus.CANCELLED))

    statuses = [s.status for s in package.sessions]
    assert statuses == [SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.CANCELLED]
    assert [s.payment.status for s in package.sessions[1:]] == [PaymentStatus.CANCELLED] * 2


def test_cancelling_paid_package_keeps_received_payments(db, service, professional, patient):
    package = sell(
        service,
        professional,
        patient,
        total=3,
        booked=3,
        isPaid=True,
        receiptUrl="https://files.example.com/package.pdf",
    )

    service.update_package(professional.id, package.id, PackageUpdate(status=PackageStatus.CANCELLED))

    assert [s.status for s in package.sessions] == [SessionStatus.CANCELLED] * 3
    assert [s.payment.status for s in package.sessions] == [PaymentStatus.PAID] * 3
    assert all(s.payment.paid_at is not None for s in package.sessions)


def test_cancelling_package_cancels_pending_payment_of_no_show(db, service, professional, patient):
    package = sell(service, professional, patient, total=3, booked=3)
    no_show = package.sessions[0]
    SessionService(db).change_session_status(professional.id, no_show.id, SessionStatus.NO_SHOW)
    # Charge the missed session after all
    PaymentService(db).update_payment(
        professional.id, no_show.payment.id, PaymentUpdate(status=PaymentStatus.PENDING)
    )

    service.update_package(professional.id, package.id, PackageUpdate(status=PackageStatus.CANCELLED))

    assert no_show.status == SessionStatus.NO_SHOW
    assert no_show.payment.status == PaymentStatus.CANCELLED


def test_package_with_completed_session_cannot_be_deleted(db, service, professional, patient):
    package = sell(service, professional, patient, total=3, booked=3)
    SessionService(db).change_session_status(
        professional.id, package.sessions[0].id, SessionStatus.COMPLETED
    )

    with pytest.raises(InvariantViolationError):
        service.delete_package(professional.id, package.id)

    assert db.query(SessionPackage).count() == 1
    assert db.query(TherapySession).count() == 3
    assert db.query(Payment).count() == 3


def test_delete_package_removes_sessions_payments_and_plan(db, service, professional, patient):
    package = sell(service, professional, patient, total=3, booked=3)
    package_id = package.id

    deleted = service.delete_package(professional.id, package_id)

    assert deleted == 3
    assert db.query(SessionPackage).count() == 0
    assert db.query(TherapySession).count() == 0
    assert db.query(Payment).count() == 0
    assert db.query(PricingPlan).count() == 0
"""HTTP-level tests: status codes and error payloads"""

from datetime import timedelta

from app.models import Payment, TherapySession

from .conftest import BASE_TIME


def iso(dt):
    return dt.isoformat()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_create_and_fetch_session(client, patient):
    response = client.post(
        "/sessions",
        json={"patientId": patient.id, "dateTime": iso(BASE_TIME), "customSessionPrice": 120},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "SCHEDULED"
    assert body["payment"]["status"] == "PENDING"
    assert body["payment"]["amount"] == 120.0

    fetched = client.get(f"/sessions/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == body["id"]


def test_timezone_offset_is_dropped(client, patient):
    response = client.post(
        "/sessions",
        json={"patientId": patient.id, "dateTime": "2030-01-07T10:00:00-03:00"},
    )

    assert response.status_code == 201
    assert response.json()["date_time"] == "2030-01-07T10:00:00"


def test_invalid_duration_is_rejected(client, patient):
    response = client.post(
        "/sessions",
        json={"patientId": patient.id, "dateTime": iso(BASE_TIME), "duration": 10},
    )

    assert response.status_code == 422


def test_unknown_patient_returns_404(client):
    response = client.post("/sessions", json={"patientId": 999, "dateTime": iso(BASE_TIME)})

    assert response.status_code == 404
    assert response.json()["detail"] == "Patient not found"


def test_recurring_conflict_returns_409_with_dates(client, patient, db):
    third = BASE_TIME + timedelta(weeks=2)
    client.post("/sessions", json={"patientId": patient.id, "dateTime": iso(third)})

    response = client.post(
        "/sessions",
        json={
            "patientId": patient.id,
            "dateTime": iso(BASE_TIME),
            "isRecurring": True,
            "recurrencePattern": "WEEKLY",
            "recurrenceEndType": "OCCURRENCES",
            "recurrenceOccurrences": 8,
        },
    )

    assert response.status_code == 409
    assert response.json()["conflicts"] == [iso(third)]
    assert db.query(TherapySession).count() == 1


def test_recurring_create_and_delete_future(client, patient, db):
    created = client.post(
        "/sessions",
        json={
            "patientId": patient.id,
            "dateTime": iso(BASE_TIME),
            "isRecurring": True,
            "recurrencePattern": "WEEKLY",
            "recurrenceOccurrences": 8,
        },
    )
    assert created.status_code == 201
    body = created.json()
    assert body["sessionsCreated"] == 8
    assert body["description"] == "8 sessions, every week"
    group_id = body["recurrenceGroupId"]

    group = client.get(f"/sessions/recurring/{group_id}").json()
    assert group["stats"]["total"] == 8
    fourth = group["sessions"][3]["id"]

    response = client.delete(
        f"/sessions/recurring/{group_id}", params={"deleteType": "FUTURE", "sessionId": fourth}
    )

    assert response.status_code == 200
    assert response.json()["deletedCount"] == 5
    assert db.query(TherapySession).count() == 3
    assert db.query(Payment).count() == 3


def test_completed_session_delete_returns_400(client, patient):
    session_id = client.post(
        "/sessions", json={"patientId": patient.id, "dateTime": iso(BASE_TIME)}
    ).json()["id"]
    client.patch(f"/sessions/{session_id}/status", json={"status": "COMPLETED"})

    response = client.delete(f"/sessions/{session_id}")

    assert response.status_code == 400
    assert "detail" in response.json()


def test_invalid_transition_returns_400(client, patient):
    session_id = client.post(
        "/sessions", json={"patientId": patient.id, "dateTime": iso(BASE_TIME)}
    ).json()["id"]
    client.patch(f"/sessions/{session_id}/status", json={"status": "CANCELLED"})

    response = client.patch(f"/sessions/{session_id}/status", json={"status": "CONFIRMED"})

    assert response.status_code == 400


def test_check_conflicts_and_preview(client, patient):
    client.post("/sessions", json={"patientId": patient.id, "dateTime": iso(BASE_TIME)})

    check = client.post(
        "/sessions/check-conflicts",
        json={"dates": [iso(BASE_TIME), iso(BASE_TIME + timedelta(hours=3))], "duration": 50},
    ).json()
    assert check == {"hasConflicts": True, "conflicts": [iso(BASE_TIME)], "checkedCount": 2}

    preview = client.post(
        "/sessions/recurrence-preview",
        json={
            "dateTime": iso(BASE_TIME),
            "recurrencePattern": "BIWEEKLY",
            "recurrenceOccurrences": 3,
        },
    ).json()
    assert preview["count"] == 3
    assert [d["hasConflict"] for d in preview["dates"]] == [True, False, False]


def test_package_capacity_error_payload(client, patient):
    created = client.post(
        "/packages",
        json={
            "patientId": patient.id,
            "pricingType": "PACKAGE",
            "packagePrice": 1000,
            "totalSessions": 10,
            "sessions": [
                {"dateTime": iso(BASE_TIME + timedelta(weeks=i))} for i in range(7)
            ],
        },
    )
    assert created.status_code == 201
    package_id = created.json()["id"]
    assert created.json()["stats"]["remainingSlots"] == 3

    response = client.post(
        f"/packages/{package_id}/sessions",
        json={"sessions": [{"dateTime": iso(BASE_TIME + timedelta(weeks=7 + i))} for i in range(4)]},
    )

    assert response.status_code == 400
    assert response.json()["remainingSlots"] == 3

    accepted = client.post(
        f"/packages/{package_id}/sessions",
        json={"sessions": [{"dateTime": iso(BASE_TIME + timedelta(weeks=7 + i))} for i in range(3)]},
    )
    assert accepted.status_code == 200
    assert accepted.json()["createdCount"] == 3

    stats = client.get(f"/packages/{package_id}/stats").json()
    assert stats["remainingSlots"] == 0
    assert stats["totalScheduled"] == 10


def test_payment_summary_and_update(client, patient):
    session = client.post(
        "/sessions",
        json={"patientId": patient.id, "dateTime": iso(BASE_TIME), "customSessionPrice": 90},
    ).json()

    updated = client.put(
        f"/payments/{session['payment']['id']}", json={"status": "PAID", "method": "PIX"}
    )
    assert updated.status_code == 200
    assert updated.json()["paid_at"] is not None

    summary = client.get("/payments/summary").json()
    assert summary["paidCount"] == 1
    assert summary["amountPaid"] == 90.0

"""
Admin session, CSRF, booking lifecycle, refunds, settings and export.
"""

from types import SimpleNamespace

import stripe

from lisbonlovesme.core.config import settings
from lisbonlovesme.db.models import Booking, OutboxMessage

from conftest import ADMIN_CREDENTIALS, booking_body


def _book(client, tour, availability, **extra):
    response = client.post("/api/bookings", json=booking_body(tour, availability, **extra))
    assert response.status_code == 201, response.text
    return response.json()


def test_admin_routes_require_login(client):
    response = client.get("/api/admin/bookings")
    assert response.status_code == 401
    assert response.json()["message"] == "Unauthorized"


def test_wrong_password_is_rejected(client):
    response = client.post("/api/admin/login", json={"username": "admin", "password": "nope"})
    assert response.status_code == 401


def test_session_and_logout(client):
    assert client.get("/api/admin/session").json()["isAuthenticated"] is False
    login = client.post("/api/admin/login", json=ADMIN_CREDENTIALS)
    assert login.status_code == 200
    session = client.get("/api/admin/session").json()
    assert session["isAuthenticated"] is True
    assert session["user"]["username"] == "admin"
    assert client.get("/api/admin/me").json()["isAdmin"] is True
    client.post("/api/admin/logout")
    assert client.get("/api/admin/me").status_code == 401


def test_state_changing_admin_call_needs_csrf_header(client):
    client.post("/api/admin/login", json=ADMIN_CREDENTIALS)
    response = client.put("/api/admin/settings", json={"autoCloseDay": True})
    assert response.status_code == 403
    assert response.json()["message"] == "Invalid CSRF token"

    token = client.get("/api/csrf-token").json()["csrfToken"]
    response = client.put("/api/admin/settings", json={"autoCloseDay": True}, headers={"X-CSRF-Token": token})
    assert response.status_code == 200
    assert response.json()["autoCloseDay"] is True


def test_non_admin_user_is_forbidden(client, db):
    from lisbonlovesme.core.security import hash_password
    from lisbonlovesme.db.repositories import UserRepository

    UserRepository(db).create("guide", hash_password("guidepassword"), is_admin=False)
    db.commit()
    client.post("/api/admin/login", json={"username": "guide", "password": "guidepassword"})
    response = client.get("/api/admin/bookings")
    assert response.status_code == 403
    assert response.json()["message"] == "Forbidden - Admin access required"


def test_change_password(admin_client):
    response = admin_client.post(
        "/api/admin/password", json={"currentPassword": "adminpassword", "newPassword": "n3w-password"}
    )
    assert response.status_code == 200
    bad = admin_client.post("/api/admin/password", json={"currentPassword": "wrong", "newPassword": "whatever123"})
    assert bad.status_code == 400


def test_requests_confirm_flow(client, admin_client, db, tour, availability):
    booking = _book(client, tour, availability)

    requests = admin_client.get("/api/admin/requests").json()
    assert [r["id"] for r in requests] == [booking["id"]]

    edited = admin_client.put(
        f"/api/admin/requests/{booking['id']}",
        json={"confirmedTime": "11:30", "confirmedMeetingPoint": "Praça do Comércio", "adminNotes": "VIP"},
    )
    assert edited.status_code == 200
    assert edited.json()["confirmedTime"] == "11:30"

    confirmed = admin_client.post(f"/api/admin/requests/{booking['id']}/confirm")
    assert confirmed.status_code == 200
    assert confirmed.json()["paymentStatus"] == "confirmed"
    assert admin_client.get("/api/admin/requests").json() == []

    kinds = [m.kind for m in db.query(OutboxMessage).all()]
    assert "email.booking_confirmed" in kinds


def test_bad_confirmed_time_is_rejected(client, admin_client, tour, availability):
    booking = _book(client, tour, availability)
    response = admin_client.put(f"/api/admin/requests/{booking['id']}", json={"confirmedTime": "25h"})
    assert response.status_code == 400


def test_cancelled_booking_cannot_be_confirmed(client, admin_client, tour, availability):
    booking = _book(client, tour, availability)
    assert admin_client.post(f"/api/admin/requests/{booking['id']}/cancel").json()["paymentStatus"] == "cancelled"

    response = admin_client.post(f"/api/admin/requests/{booking['id']}/confirm")
    assert response.status_code == 409
    assert response.json()["currentStatus"] == "cancelled"


def test_manual_refund_without_payment_intent(client, admin_client, tour, availability):
    booking = _book(client, tour, availability)

    response = admin_client.post(f"/api/admin/refund/{booking['id']}", json={"reason": "rain"})

    assert response.status_code == 200
    refunded = response.json()["booking"]
    assert refunded["paymentStatus"] == "refunded"
    assert refunded["additionalInfo"]["refund"]["method"] == "manual"
    assert refunded["additionalInfo"]["refund"]["reason"] == "rain"
    assert admin_client.post(f"/api/admin/refund/{booking['id']}").status_code == 409


def test_stripe_refund(client, admin_client, db, tour, availability, monkeypatch):
    booking = _book(client, tour, availability)
    db.get(Booking, booking["id"]).stripe_payment_intent_id = "pi_123"
    db.commit()
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="re_1", status="succeeded")

    monkeypatch.setattr(stripe.Refund, "create", fake_create)

    response = admin_client.post(f"/api/admin/refund/{booking['id']}")

    assert response.status_code == 200
    refund = response.json()["booking"]["additionalInfo"]["refund"]
    assert refund["method"] == "stripe"
    assert refund["stripeRefundId"] == "re_1"
    assert calls[0]["payment_intent"] == "pi_123"


def test_stripe_failure_maps_to_502(client, admin_client, db, tour, availability, monkeypatch):
    booking = _book(client, tour, availability)
    db.get(Booking, booking["id"]).stripe_payment_intent_id = "pi_456"
    db.commit()
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")

    def failing_create(**kwargs):
        raise stripe.StripeError("card_declined")

    monkeypatch.setattr(stripe.Refund, "create", failing_create)

    response = admin_client.post(f"/api/admin/refund/{booking['id']}")

    assert response.status_code == 502
    db.expire_all()
    assert db.get(Booking, booking["id"]).payment_status == "requested"


def test_payments_and_review_request(client, admin_client, db, tour, availability):
    booking = _book(client, tour, availability)

    payments = admin_client.get("/api/admin/payments").json()
    assert payments[0]["bookingReference"] == booking["bookingReference"]
    assert payments[0]["totalAmount"] == 9000

    assert admin_client.post(f"/api/admin/bookings/{booking['id']}/review-request").status_code == 200
    assert "email.review_request" in [m.kind for m in db.query(OutboxMessage).all()]


def test_export_dumps_tables(client, admin_client, tour, availability):
    _book(client, tour, availability)

    dump = admin_client.get("/api/admin/export").json()

    assert len(dump["bookings"]) == 1
    assert len(dump["tours"]) == 1
    assert "users" not in dump
    assert "exportedAt" in dump


def test_refunded_booking_is_not_sent_to_stripe_again(client, admin_client, db, tour, availability, monkeypatch):
    booking = _book(client, tour, availability)
    db.get(Booking, booking["id"]).stripe_payment_intent_id = "pi_123"
    db.commit()
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id=f"re_{len(calls)}", status="succeeded")

    monkeypatch.setattr(stripe.Refund, "create", fake_create)

    assert admin_client.post(f"/api/admin/refund/{booking['id']}").status_code == 200
    second = admin_client.post(f"/api/admin/refund/{booking['id']}")

    assert second.status_code == 409
    assert second.json()["currentStatus"] == "refunded"
    assert len(calls) == 1
    db.expire_all()
    assert db.get(Booking, booking["id"]).additional_info["refund"]["stripeRefundId"] == "re_1"


def test_cancelled_booking_cannot_be_cancelled_again(client, admin_client, tour, availability):
    booking = _book(client, tour, availability)
    assert admin_client.post(f"/api/admin/requests/{booking['id']}/cancel").status_code == 200

    response = admin_client.post(f"/api/admin/requests/{booking['id']}/cancel")

    assert response.status_code == 409
    assert response.json()["currentStatus"] == "cancelled"


def test_confirmed_booking_can_be_reconfirmed(client, admin_client, db, tour, availability):
    booking = _book(client, tour, availability)
    assert admin_client.post(f"/api/admin/requests/{booking['id']}/confirm").status_code == 200

    again = admin_client.post(f"/api/admin/requests/{booking['id']}/confirm", json={"confirmedTime": "12:00"})

    assert again.status_code == 200
    assert again.json()["confirmedTime"] == "12:00"
    kinds = [m.kind for m in db.query(OutboxMessage).all()]
    assert kinds.count("email.booking_confirmed") == 2

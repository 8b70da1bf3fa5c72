"""
Shared fixtures: in-memory SQLite, fresh schema per test, app client and a
logged-in admin client carrying the CSRF header.
"""

import os
import tempfile

# Configure before any lisbonlovesme import reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="lisbonlovesme-uploads-")
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "adminpassword"
os.environ["OUTBOX_POLL_SECONDS"] = "3600"
os.environ["WS_HEARTBEAT_SECONDS"] = "3600"
for _var in ("SMTP_HOST", "STRIPE_SECRET_KEY", "FCM_CREDENTIALS_FILE", "ADMIN_NOTIFICATION_EMAIL"):
    os.environ.pop(_var, None)

import pytest
from fastapi.testclient import TestClient

from lisbonlovesme.db.database import SessionLocal, engine
from lisbonlovesme.db.models import Availability, Base, DiscountCode, Tour
from lisbonlovesme.main import app

ADMIN_CREDENTIALS = {"username": "admin", "password": "adminpassword"}


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_client():
    with TestClient(app) as c:
        response = c.post("/api/admin/login", json=ADMIN_CREDENTIALS)
        assert response.status_code == 200, response.text
        c.headers["X-CSRF-Token"] = response.json()["csrfToken"]
        yield c


def make_tour(db, price=4500, price_type="per_person", max_group_size=12, **extra) -> Tour:
    tour = Tour(
        name={"en": "Alfama Walk", "pt": "Passeio Alfama", "ru": "Прогулка по Алфаме"},
        description={"en": "Old town", "pt": "Cidade velha", "ru": "Старый город"},
        duration={"en": "3 hours", "pt": "3 horas", "ru": "3 часа"},
        difficulty={"en": "Easy", "pt": "Fácil", "ru": "Легко"},
        image_url="",
        max_group_size=max_group_size,
        price=price,
        price_type=price_type,
        **extra,
    )
    db.add(tour)
    db.commit()
    return tour


def make_availability(db, tour, spots=10, date="2030-05-01", time="10:00") -> Availability:
    availability = Availability(tour_id=tour.id, date=date, time=time, max_spots=spots, spots_left=spots)
    db.add(availability)
    db.commit()
    return availability


def make_discount(db, code, category, value, **extra) -> DiscountCode:
    discount = DiscountCode(code=code, name=code, category=category, value=value, **extra)
    db.add(discount)
    db.commit()
    return discount


@pytest.fixture
def tour(db):
    return make_tour(db)


@pytest.fixture
def availability(db, tour):
    return make_availability(db, tour)


def booking_body(tour, availability, participants=2, **extra):
    body = {
        "tourId": tour.id,
        "availabilityId": availability.id,
        "customerFirstName": "Ana",
        "customerLastName": "Silva",
        "customerEmail": "ana@example.com",
        "customerPhone": "+351900000000",
        "numberOfParticipants": participants,
    }
    body.update(extra)
    return body

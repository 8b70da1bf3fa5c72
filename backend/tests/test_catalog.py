"""
Tours, availability slots and closed days.
"""

from lisbonlovesme.db.models import ClosedDay
from lisbonlovesme.db.repositories import ClosedDayRepository

from conftest import make_availability, make_tour

TOUR_PAYLOAD = {
    "name": "Belém Food Tour",
    "description": {"en": "Pastries", "pt": "Pastéis"},
    "duration": "4 hours",
    "maxGroupSize": 10,
    "difficulty": "Easy",
    "price": 3000,
}


def test_create_tour_spreads_plain_strings(admin_client):
    response = admin_client.post("/api/tours", json=TOUR_PAYLOAD)
    assert response.status_code == 201, response.text
    tour = response.json()
    assert tour["name"] == {"en": "Belém Food Tour", "pt": "Belém Food Tour", "ru": "Belém Food Tour"}
    assert tour["description"]["ru"] == ""
    assert tour["priceType"] == "per_person"


def test_tour_localization_falls_back_to_english(client, admin_client):
    tour_id = admin_client.post("/api/tours", json=TOUR_PAYLOAD).json()["id"]
    pt = client.get(f"/api/tours/{tour_id}", params={"lang": "pt"}).json()
    ru = client.get(f"/api/tours/{tour_id}", params={"lang": "ru"}).json()
    assert pt["localized"]["description"] == "Pastéis"
    assert ru["localized"]["description"] == "Pastries"


def test_inactive_tours_hidden_from_public(client, admin_client):
    tour_id = admin_client.post("/api/tours", json=TOUR_PAYLOAD).json()["id"]
    admin_client.put(f"/api/tours/{tour_id}", json={"isActive": False})
    assert client.get("/api/tours").json() == []
    assert len(admin_client.get("/api/admin/tours").json()) == 1


def test_tour_mutations_need_admin(client):
    assert client.post("/api/tours", json=TOUR_PAYLOAD).status_code == 401


def test_unknown_price_type_rejected(admin_client):
    response = admin_client.post("/api/tours", json={**TOUR_PAYLOAD, "priceType": "per_hour"})
    assert response.status_code == 400


def test_delete_tour(admin_client, client):
    tour_id = admin_client.post("/api/tours", json=TOUR_PAYLOAD).json()["id"]
    assert admin_client.delete(f"/api/tours/{tour_id}").status_code == 200
    assert client.get(f"/api/tours/{tour_id}").status_code == 404


def test_availability_defaults_spots_left_to_max(admin_client, tour):
    response = admin_client.post(
        "/api/availabilities", json={"tourId": tour.id, "date": "2030-06-01", "time": "09:30", "maxSpots": 8}
    )
    assert response.status_code == 201
    assert response.json()["spotsLeft"] == 8


def test_availability_rejects_bad_capacity_and_format(admin_client, tour):
    too_many = {"tourId": tour.id, "date": "2030-06-01", "time": "09:30", "maxSpots": 4, "spotsLeft": 5}
    assert admin_client.post("/api/availabilities", json=too_many).status_code == 400
    bad_date = {"tourId": tour.id, "date": "01/06/2030", "time": "09:30", "maxSpots": 4}
    assert admin_client.post("/api/availabilities", json=bad_date).status_code == 400
    unknown_tour = {"tourId": 999, "date": "2030-06-01", "time": "09:30", "maxSpots": 4}
    assert admin_client.post("/api/availabilities", json=unknown_tour).status_code == 404


def test_availability_update_keeps_invariant(admin_client, availability):
    response = admin_client.put(f"/api/availabilities/{availability.id}", json={"maxSpots": 5})
    assert response.status_code == 400
    ok = admin_client.put(f"/api/availabilities/{availability.id}", json={"maxSpots": 12, "spotsLeft": 12})
    assert ok.status_code == 200
    assert ok.json()["spotsLeft"] == 12


def test_closed_days_filter_listing(client, admin_client, db, tour):
    make_availability(db, tour, date="2030-07-01")
    make_availability(db, tour, date="2030-07-02")

    assert admin_client.post("/api/closed-days", json={"date": "2030-07-01", "reason": "Holiday"}).status_code == 201

    dates = [a["date"] for a in client.get("/api/availabilities", params={"tourId": tour.id}).json()]
    assert dates == ["2030-07-02"]
    everything = client.get("/api/availabilities", params={"tourId": tour.id, "includeClosed": "true"}).json()
    assert len(everything) == 2
    assert client.get("/api/closed-days").json()[0]["reason"] == "Holiday"

    assert admin_client.delete("/api/closed-days/2030-07-01").status_code == 200
    assert len(client.get("/api/availabilities", params={"tourId": tour.id}).json()) == 2
    assert admin_client.delete("/api/closed-days/2030-07-01").status_code == 404


def test_closing_a_day_twice_keeps_one_row(admin_client, db):
    first = admin_client.post("/api/closed-days", json={"date": "2030-08-15"})
    second = admin_client.post("/api/closed-days", json={"date": "2030-08-15", "reason": "again"})
    assert first.status_code == second.status_code == 201
    assert first.json()["id"] == second.json()["id"]
    assert db.query(ClosedDay).filter(ClosedDay.date == "2030-08-15").count() == 1


def test_repository_close_day_is_idempotent(db):
    repo = ClosedDayRepository(db)
    first = repo.close_day("2030-09-01", "Auto-closed: fully booked")
    second = repo.close_day("2030-09-01", "Auto-closed after booking")
    db.commit()
    assert first.id == second.id
    assert second.reason == "Auto-closed: fully booked"
    assert repo.is_closed("2030-09-01")


def test_reserve_spots_never_goes_negative(db):
    from lisbonlovesme.db.repositories import AvailabilityRepository

    tour = make_tour(db)
    availability = make_availability(db, tour, spots=3)
    repo = AvailabilityRepository(db)

    assert repo.reserve_spots(availability.id, 2)
    assert not repo.reserve_spots(availability.id, 2)
    assert repo.reserve_spots(availability.id, 1)
    db.commit()
    db.refresh(availability)
    assert availability.spots_left == 0


def test_health_endpoints(client, tour):
    health = client.get("/api/health/").json()
    assert health["database"] == "available"
    assert health["tours"] == 1
    assert client.get("/api/health/ready").json()["ready"] is True
    assert client.get("/api/health/live").json()["alive"] is True


def test_null_for_required_update_fields_is_rejected(admin_client, availability, tour):
    slot = admin_client.put(f"/api/availabilities/{availability.id}", json={"maxSpots": None})
    assert slot.status_code == 400
    assert admin_client.put(f"/api/availabilities/{availability.id}", json={"spotsLeft": None}).status_code == 400
    assert admin_client.put(f"/api/tours/{tour.id}", json={"price": None}).status_code == 400

    # Omitting the field is still a valid partial update
    assert admin_client.put(f"/api/availabilities/{availability.id}", json={"time": "11:00"}).status_code == 200

"""
Discount evaluator and the validate / admin discount endpoints.
"""

from datetime import datetime, timedelta

from lisbonlovesme.db.models import DiscountCode, Tour
from lisbonlovesme.services.discounts import (
    compute_discount,
    evaluate_discount,
    normalize_code,
    original_amount,
)

from conftest import make_discount


def _tour(price=4500, price_type="per_person"):
    return Tour(id=1, price=price, price_type=price_type)


def _code(category, value, **extra):
    fields = {"id": 7, "code": "X", "is_active": True, "used_count": 0}
    fields.update(extra)
    return DiscountCode(category=category, value=value, **fields)


def test_original_amount_per_basis():
    assert original_amount(4500, "per_person", 2) == 9000
    assert original_amount(32000, "per_group", 5) == 32000
    assert original_amount(32000, "per_group", 1) == 32000


def test_percentage_ten_percent():
    result = evaluate_discount(_code("percentage", 10), _tour(), 2)
    assert result.valid
    assert result.original_amount == 9000
    assert result.discount_amount == 900
    assert result.total_amount == 8100


def test_percentage_is_clamped_and_floored():
    assert compute_discount("percentage", 150, 4500, "per_person", 2) == 9000
    assert compute_discount("percentage", 33, 1000, "per_person", 1) == 330
    assert compute_discount("percentage", 15, 999, "per_person", 1) == 149


def test_fixed_value_capped_at_original():
    result = evaluate_discount(_code("fixed_value", 50000), _tour(), 2)
    assert result.discount_amount == 9000
    assert result.total_amount == 0


def test_free_tour_one_participant():
    result = evaluate_discount(_code("free_tour", 1), _tour(price=3000), 3)
    assert result.original_amount == 9000
    assert result.discount_amount == 3000
    assert result.total_amount == 6000


def test_free_tour_capped_at_participants():
    assert compute_discount("free_tour", 5, 3000, "per_person", 2) == 6000


def test_free_tour_rejected_for_per_group():
    result = evaluate_discount(_code("free_tour", 1), _tour(price=32000, price_type="per_group"), 4)
    assert not result.valid
    assert result.reason == "category_mismatch"
    assert result.discount_amount == 0
    assert result.total_amount == 32000


def test_rejection_reasons_in_order():
    now = datetime(2030, 1, 1)
    tour = _tour()
    assert evaluate_discount(None, tour, 1, now).reason == "not_found"
    assert evaluate_discount(_code("percentage", 10, is_active=False), tour, 1, now).reason == "inactive"
    expired = _code("percentage", 10, valid_until=now - timedelta(days=1))
    assert evaluate_discount(expired, tour, 1, now).reason == "expired"
    exhausted = _code("percentage", 10, usage_limit=1, used_count=1)
    assert evaluate_discount(exhausted, tour, 1, now).reason == "usage_exhausted"
    # inactive wins over expired
    both = _code("percentage", 10, is_active=False, valid_until=now - timedelta(days=1))
    assert evaluate_discount(both, tour, 1, now).reason == "inactive"


def test_future_expiry_is_valid():
    now = datetime(2030, 1, 1)
    code = _code("percentage", 10, valid_until=now + timedelta(hours=1))
    assert evaluate_discount(code, _tour(), 1, now).valid


def test_normalize_code():
    assert normalize_code("  save10 ") == "SAVE10"
    assert normalize_code(None) == ""


def test_invalid_result_dict_carries_reason_and_message():
    body = evaluate_discount(None, _tour(), 2).to_dict()
    assert body["valid"] is False
    assert body["reason"] == "not_found"
    assert body["message"]
    assert body["discountAmount"] == 0
    assert body["totalAmount"] == 9000


# ----------------------------------------------------------------------------
# HTTP
# ----------------------------------------------------------------------------

def test_validate_endpoint_valid_code(client, db, tour):
    make_discount(db, "SAVE10", "percentage", 10)
    response = client.post("/api/discounts/validate", json={"code": "save10", "tourId": tour.id, "participants": 2})
    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert body["discountAmount"] == 900
    assert body["totalAmount"] == 8100


def test_validate_endpoint_expired_code(client, db, tour):
    make_discount(db, "OLD", "percentage", 10, valid_until=datetime.utcnow() - timedelta(days=1))
    response = client.post("/api/discounts/validate", json={"code": "OLD", "tourId": tour.id, "participants": 2})
    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["reason"] == "expired"


def test_validate_endpoint_unknown_tour(client):
    response = client.post("/api/discounts/validate", json={"code": "X", "tourId": 999, "participants": 1})
    assert response.status_code == 404


def test_admin_create_discount_one_time(admin_client):
    response = admin_client.post(
        "/api/admin/discounts",
        json={"code": "once", "category": "fixed_value", "value": 1000, "oneTime": True},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["code"] == "ONCE"
    assert body["usageLimit"] == 1
    assert body["oneTime"] is True


def test_admin_duplicate_discount_conflicts(admin_client):
    payload = {"code": "DUP", "category": "percentage", "value": 5}
    assert admin_client.post("/api/admin/discounts", json=payload).status_code == 201
    assert admin_client.post("/api/admin/discounts", json=payload).status_code == 409


def test_admin_percentage_out_of_range(admin_client):
    response = admin_client.post("/api/admin/discounts", json={"code": "BIG", "category": "percentage", "value": 150})
    assert response.status_code == 400


def test_admin_update_and_delete_discount(admin_client):
    created = admin_client.post("/api/admin/discounts", json={"code": "EDIT", "category": "percentage", "value": 5})
    discount_id = created.json()["id"]
    updated = admin_client.put(f"/api/admin/discounts/{discount_id}", json={"value": 20, "isActive": False})
    assert updated.status_code == 200
    assert updated.json()["value"] == 20
    assert updated.json()["isActive"] is False
    assert admin_client.delete(f"/api/admin/discounts/{discount_id}").status_code == 200
    assert admin_client.get("/api/admin/discounts").json() == []


def test_admin_update_keeps_usage_limit_when_one_time_is_false(admin_client):
    created = admin_client.post(
        "/api/admin/discounts", json={"code": "LIM50", "category": "percentage", "value": 5, "usageLimit": 50}
    ).json()

    updated = admin_client.put(f"/api/admin/discounts/{created['id']}", json={"oneTime": False, "name": "renamed"})

    assert updated.status_code == 200
    assert updated.json()["usageLimit"] == 50
    assert updated.json()["name"] == "renamed"


def test_admin_update_rejects_null_for_required_fields(admin_client):
    created = admin_client.post("/api/admin/discounts", json={"code": "NUL", "category": "percentage", "value": 5})

    response = admin_client.put(f"/api/admin/discounts/{created.json()['id']}", json={"value": None})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid request data"

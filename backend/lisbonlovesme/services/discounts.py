"""
Discount code evaluation.

One pure function decides whether a code applies to a prospective order and
how much it takes off. Both the validate endpoint and the booking workflow
call it; they differ only in what they do with an invalid result.

Categories:
  percentage   floor(original * value / 100), value clamped to 0..100
  fixed_value  min(value, original)
  free_tour    per_person tours only: min(value, participants) * price
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from lisbonlovesme.db.models import DiscountCode, Tour

CATEGORIES = ("percentage", "fixed_value", "free_tour")
PRICE_TYPES = ("per_person", "per_group")

REASON_MESSAGES = {
    "not_found": "Discount code not found",
    "inactive": "Discount code is no longer active",
    "expired": "Discount code has expired",
    "usage_exhausted": "Discount code usage limit reached",
    "category_mismatch": "Free tour codes only apply to per-person tours",
}


@dataclass
class DiscountEvaluation:
    valid: bool
    original_amount: int
    discount_amount: int = 0
    reason: Optional[str] = None
    code: Optional[str] = None
    category: Optional[str] = None
    discount_id: Optional[int] = None

    @property
    def total_amount(self) -> int:
        return max(0, self.original_amount - self.discount_amount)

    @property
    def message(self) -> Optional[str]:
        return REASON_MESSAGES.get(self.reason) if self.reason else None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "valid": self.valid,
            "code": self.code,
            "originalAmount": self.original_amount,
            "discountAmount": self.discount_amount,
            "totalAmount": self.total_amount,
        }
        if self.valid:
            body["category"] = self.category
        else:
            body["reason"] = self.reason
            body["message"] = self.message
        return body


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def original_amount(price: int, price_type: Optional[str], participants: int) -> int:
    """Price for the whole group on per_group tours, else price per participant."""
    if price_type == "per_group":
        return price
    return price * participants


def compute_discount(category: str, value: int, price: int, price_type: Optional[str],
                     participants: int) -> int:
    """Amount taken off for a code that passed its preconditions."""
    base = original_amount(price, price_type, participants)
    if category == "percentage":
        pct = min(max(value, 0), 100)
        return (base * pct) // 100
    if category == "fixed_value":
        return min(max(value, 0), base)
    if category == "free_tour":
        if price_type == "per_group":
            return 0
        free = min(max(value, 0), participants)
        return min(free * price, base)
    raise ValueError(f"Unknown discount category: {category}")


def evaluate_discount(
    discount: Optional[DiscountCode],
    tour: Tour,
    participants: int,
    now: Optional[datetime] = None,
) -> DiscountEvaluation:
    """Check a code against a tour and party size; never raises for bad codes."""
    now = now or datetime.utcnow()
    base = original_amount(tour.price, tour.price_type, participants)

    if discount is None:
        return DiscountEvaluation(valid=False, original_amount=base, reason="not_found")

    def reject(reason: str) -> DiscountEvaluation:
        return DiscountEvaluation(
            valid=False, original_amount=base, reason=reason,
            code=discount.code, category=discount.category, discount_id=discount.id,
        )

    if not discount.is_active:
        return reject("inactive")
    if discount.valid_until is not None and discount.valid_until <= now:
        return reject("expired")
    if discount.usage_limit is not None and (discount.used_count or 0) >= discount.usage_limit:
        return reject("usage_exhausted")
    if discount.category == "free_tour" and tour.price_type == "per_group":
        return reject("category_mismatch")

    amount = compute_discount(discount.category, discount.value, tour.price, tour.price_type, participants)
    return DiscountEvaluation(
        valid=True,
        original_amount=base,
        discount_amount=amount,
        code=discount.code,
        category=discount.category,
        discount_id=discount.id,
    )

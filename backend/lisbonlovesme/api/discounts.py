import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lisbonlovesme.api.schemas import DiscountCreate, DiscountUpdate, DiscountValidate, discount_to_dict
from lisbonlovesme.core.exceptions import ConflictError, NotFoundError, ValidationError
from lisbonlovesme.core.rate_limiting import DISCOUNT_VALIDATE_LIMIT, limiter
from lisbonlovesme.core.security import require_admin
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import DiscountRepository, TourRepository
from lisbonlovesme.services.discounts import evaluate_discount, normalize_code

logger = logging.getLogger(__name__)

router = APIRouter(tags=["discounts"])


@router.post("/discounts/validate")
@limiter.limit(DISCOUNT_VALIDATE_LIMIT)
def validate_discount(request: Request, body: DiscountValidate, db: Session = Depends(get_db)):
    """Preview what a code would take off; invalid codes are reported, not raised."""
    tour = TourRepository(db).get(body.tour_id)
    if tour is None:
        raise NotFoundError("Tour not found")
    discount = DiscountRepository(db).get_by_code(normalize_code(body.code))
    return evaluate_discount(discount, tour, body.participants).to_dict()


@router.get("/admin/discounts", dependencies=[Depends(require_admin)])
def list_discounts(db: Session = Depends(get_db)):
    return [discount_to_dict(d) for d in DiscountRepository(db).list()]


@router.post("/admin/discounts", status_code=201, dependencies=[Depends(require_admin)])
def create_discount(body: DiscountCreate, db: Session = Depends(get_db)):
    repo = DiscountRepository(db)
    code = normalize_code(body.code)
    if repo.get_by_code(code) is not None:
        raise ConflictError("Discount code already exists")
    data = body.model_dump(exclude={"one_time"})
    data["code"] = code
    try:
        discount = repo.create(data)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Discount code already exists")
    logger.info(f"Discount code {code} created ({discount.category} {discount.value})")
    return discount_to_dict(discount)


@router.put("/admin/discounts/{discount_id}", dependencies=[Depends(require_admin)])
def update_discount(discount_id: int, body: DiscountUpdate, db: Session = Depends(get_db)):
    repo = DiscountRepository(db)
    discount = repo.get(discount_id)
    if discount is None:
        raise NotFoundError("Discount code not found")

    data = body.model_dump(exclude_unset=True, exclude={"one_time"})
    # oneTime: false leaves the stored limit alone unless usageLimit is sent too
    if body.one_time:
        data["usage_limit"] = 1
    if "code" in data:
        data["code"] = normalize_code(data["code"])
        existing = repo.get_by_code(data["code"])
        if existing is not None and existing.id != discount.id:
            raise ConflictError("Discount code already exists")
    category = data.get("category", discount.category)
    value = data.get("value", discount.value)
    if category == "percentage" and value > 100:
        raise ValidationError("percentage value must be between 0 and 100")

    repo.update(discount, data)
    db.commit()
    return discount_to_dict(discount)


@router.delete("/admin/discounts/{discount_id}", dependencies=[Depends(require_admin)])
def delete_discount(discount_id: int, db: Session = Depends(get_db)):
    repo = DiscountRepository(db)
    discount = repo.get(discount_id)
    if discount is None:
        raise NotFoundError("Discount code not found")
    repo.delete(discount)
    db.commit()
    return {"success": True}

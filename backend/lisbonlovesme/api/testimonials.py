from typing import Optional
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from lisbonlovesme.api.notifications import notify_admins
from lisbonlovesme.api.schemas import TestimonialCreate, testimonial_to_dict
from lisbonlovesme.core.exceptions import NotFoundError
from lisbonlovesme.core.security import require_admin
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import TestimonialRepository, TourRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["testimonials"])


@router.get("/testimonials")
def list_testimonials(tour_id: Optional[int] = Query(None, alias="tourId"), db: Session = Depends(get_db)):
    return [testimonial_to_dict(t) for t in TestimonialRepository(db).list(tour_id=tour_id, approved_only=True)]


@router.post("/testimonials", status_code=201)
def submit_testimonial(body: TestimonialCreate, background_tasks: BackgroundTasks, db: Session = Depends(get_db)):
    """New reviews wait for admin approval before they are listed."""
    if TourRepository(db).get(body.tour_id) is None:
        raise NotFoundError("Tour not found")
    testimonial = TestimonialRepository(db).create(body.model_dump())
    notify_admins(
        db, background_tasks, "review",
        title=f"New review from {body.customer_name}",
        body=f"{body.rating}/5: {body.text[:180]}",
        payload={"testimonialId": testimonial.id, "tourId": body.tour_id},
    )
    db.commit()
    return testimonial_to_dict(testimonial)


@router.get("/admin/testimonials", dependencies=[Depends(require_admin)])
def list_all_testimonials(db: Session = Depends(get_db)):
    return [testimonial_to_dict(t) for t in TestimonialRepository(db).list(approved_only=False)]


@router.put("/testimonials/{testimonial_id}/approve", dependencies=[Depends(require_admin)])
def approve_testimonial(testimonial_id: int, db: Session = Depends(get_db)):
    testimonial = TestimonialRepository(db).get(testimonial_id)
    if testimonial is None:
        raise NotFoundError("Testimonial not found")
    testimonial.is_approved = True
    db.commit()
    return testimonial_to_dict(testimonial)


@router.delete("/testimonials/{testimonial_id}", dependencies=[Depends(require_admin)])
def delete_testimonial(testimonial_id: int, db: Session = Depends(get_db)):
    repo = TestimonialRepository(db)
    testimonial = repo.get(testimonial_id)
    if testimonial is None:
        raise NotFoundError("Testimonial not found")
    repo.delete(testimonial)
    db.commit()
    return {"success": True}

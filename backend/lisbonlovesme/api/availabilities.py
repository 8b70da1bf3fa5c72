"""
Availability slots and closed days.
Slots on a closed day are hidden from the public listing.
"""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lisbonlovesme.api.schemas import (
    AvailabilityCreate,
    AvailabilityUpdate,
    ClosedDayCreate,
    availability_to_dict,
)
from lisbonlovesme.core.exceptions import NotFoundError, ValidationError
from lisbonlovesme.core.security import require_admin
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import AvailabilityRepository, ClosedDayRepository, TourRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability"])


def _closed_day_to_dict(day):
    return {
        "id": day.id,
        "date": day.date,
        "reason": day.reason,
        "createdAt": day.created_at.isoformat() if day.created_at else None,
    }


def _check_capacity(max_spots: int, spots_left: int) -> None:
    if spots_left < 0 or spots_left > max_spots:
        raise ValidationError("spotsLeft must be between 0 and maxSpots")


@router.get("/availabilities")
def list_availabilities(
    tour_id: Optional[int] = Query(None, alias="tourId"),
    date: Optional[str] = Query(None),
    include_closed: bool = Query(False, alias="includeClosed"),
    db: Session = Depends(get_db),
):
    slots = AvailabilityRepository(db).list(tour_id=tour_id, date=date, include_closed=include_closed)
    return [availability_to_dict(a) for a in slots]


@router.get("/availabilities/{availability_id}")
def get_availability(availability_id: int, db: Session = Depends(get_db)):
    availability = AvailabilityRepository(db).get(availability_id)
    if availability is None:
        raise NotFoundError("Availability not found")
    return availability_to_dict(availability)


@router.post("/availabilities", status_code=201, dependencies=[Depends(require_admin)])
def create_availability(body: AvailabilityCreate, db: Session = Depends(get_db)):
    if TourRepository(db).get(body.tour_id) is None:
        raise NotFoundError("Tour not found")
    spots_left = body.max_spots if body.spots_left is None else body.spots_left
    _check_capacity(body.max_spots, spots_left)
    availability = AvailabilityRepository(db).create({
        "tour_id": body.tour_id,
        "date": body.date,
        "time": body.time,
        "max_spots": body.max_spots,
        "spots_left": spots_left,
    })
    db.commit()
    return availability_to_dict(availability)


@router.put("/availabilities/{availability_id}", dependencies=[Depends(require_admin)])
def update_availability(availability_id: int, body: AvailabilityUpdate, db: Session = Depends(get_db)):
    repo = AvailabilityRepository(db)
    availability = repo.get(availability_id)
    if availability is None:
        raise NotFoundError("Availability not found")
    data = body.model_dump(exclude_unset=True)
    _check_capacity(
        data.get("max_spots", availability.max_spots),
        data.get("spots_left", availability.spots_left),
    )
    try:
        repo.update(availability, data)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("spotsLeft must be between 0 and maxSpots")
    return availability_to_dict(availability)


@router.delete("/availabilities/{availability_id}", dependencies=[Depends(require_admin)])
def delete_availability(availability_id: int, db: Session = Depends(get_db)):
    repo = AvailabilityRepository(db)
    availability = repo.get(availability_id)
    if availability is None:
        raise NotFoundError("Availability not found")
    repo.delete(availability)
    db.commit()
    return {"success": True}


@router.get("/closed-days")
def list_closed_days(db: Session = Depends(get_db)):
    return [_closed_day_to_dict(d) for d in ClosedDayRepository(db).list()]


@router.post("/closed-days", status_code=201, dependencies=[Depends(require_admin)])
def close_day(body: ClosedDayCreate, db: Session = Depends(get_db)):
    day = ClosedDayRepository(db).close_day(body.date, body.reason)
    db.commit()
    logger.info(f"Date {body.date} closed")
    return _closed_day_to_dict(day)


@router.delete("/closed-days/{date}", dependencies=[Depends(require_admin)])
def reopen_day(date: str, db: Session = Depends(get_db)):
    if not ClosedDayRepository(db).reopen(date):
        raise NotFoundError("Closed day not found")
    db.commit()
    logger.info(f"Date {date} reopened")
    return {"success": True}

from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lisbonlovesme.api.schemas import TourCreate, TourUpdate, tour_to_dict
from lisbonlovesme.core.exceptions import NotFoundError
from lisbonlovesme.core.i18n import to_multilingual
from lisbonlovesme.core.security import require_admin
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import TourRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tours"])

_MULTILINGUAL = ("name", "short_description", "description", "duration", "difficulty", "badge")


def _tour_data(body, partial: bool = False) -> Dict[str, Any]:
    data = body.model_dump(exclude_unset=partial)
    for field in _MULTILINGUAL:
        if field in data and data[field] is not None:
            data[field] = to_multilingual(data[field])
    return data


def _get_tour(db: Session, tour_id: int):
    tour = TourRepository(db).get(tour_id)
    if tour is None:
        raise NotFoundError("Tour not found")
    return tour


@router.get("/tours", response_model=List[Dict[str, Any]])
def list_tours(lang: Optional[str] = Query(None), db: Session = Depends(get_db)):
    """Active tours, optionally with text localized to `lang`."""
    return [tour_to_dict(t, lang) for t in TourRepository(db).list(active_only=True)]


@router.get("/tours/{tour_id}")
def get_tour(tour_id: int, lang: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return tour_to_dict(_get_tour(db, tour_id), lang)


@router.get("/admin/tours", dependencies=[Depends(require_admin)])
def list_all_tours(db: Session = Depends(get_db)):
    return [tour_to_dict(t) for t in TourRepository(db).list(active_only=False)]


@router.post("/tours", status_code=201, dependencies=[Depends(require_admin)])
def create_tour(body: TourCreate, db: Session = Depends(get_db)):
    tour = TourRepository(db).create(_tour_data(body))
    db.commit()
    logger.info(f"Tour {tour.id} created")
    return tour_to_dict(tour)


@router.put("/tours/{tour_id}", dependencies=[Depends(require_admin)])
def update_tour(tour_id: int, body: TourUpdate, db: Session = Depends(get_db)):
    tour = _get_tour(db, tour_id)
    TourRepository(db).update(tour, _tour_data(body, partial=True))
    db.commit()
    return tour_to_dict(tour)


@router.delete("/tours/{tour_id}", dependencies=[Depends(require_admin)])
def delete_tour(tour_id: int, db: Session = Depends(get_db)):
    tour = _get_tour(db, tour_id)
    TourRepository(db).delete(tour)
    db.commit()
    logger.info(f"Tour {tour_id} deleted")
    return {"success": True}

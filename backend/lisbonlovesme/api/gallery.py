from typing import Optional
import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from lisbonlovesme.api.schemas import GalleryReorder, GalleryUpdate, gallery_to_dict
from lisbonlovesme.core.exceptions import NotFoundError
from lisbonlovesme.core.security import require_admin
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import GalleryRepository
from lisbonlovesme.services.uploads import delete_stored_file, save_image

logger = logging.getLogger(__name__)

router = APIRouter(tags=["gallery"])

_UPLOAD_PREFIX = "/uploads/"


@router.get("/gallery")
def list_gallery(db: Session = Depends(get_db)):
    return [gallery_to_dict(i) for i in GalleryRepository(db).list(active_only=True)]


@router.get("/admin/gallery", dependencies=[Depends(require_admin)])
def list_all_gallery(db: Session = Depends(get_db)):
    return [gallery_to_dict(i) for i in GalleryRepository(db).list(active_only=False)]


@router.post("/gallery", status_code=201, dependencies=[Depends(require_admin)])
async def upload_gallery_image(
    image: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    stored = await save_image(image)
    repo = GalleryRepository(db)
    item = repo.create({
        "image_url": stored.url,
        "title": title,
        "description": description,
        "display_order": repo.next_display_order(),
    })
    db.commit()
    return gallery_to_dict(item)


@router.post("/gallery/reorder", dependencies=[Depends(require_admin)])
def reorder_gallery(body: GalleryReorder, db: Session = Depends(get_db)):
    GalleryRepository(db).reorder(body.ids)
    db.commit()
    return {"success": True}


@router.put("/gallery/{image_id}", dependencies=[Depends(require_admin)])
def update_gallery_image(image_id: int, body: GalleryUpdate, db: Session = Depends(get_db)):
    repo = GalleryRepository(db)
    item = repo.get(image_id)
    if item is None:
        raise NotFoundError("Image not found")
    repo.update(item, body.model_dump(exclude_unset=True))
    db.commit()
    return gallery_to_dict(item)


@router.delete("/gallery/{image_id}", dependencies=[Depends(require_admin)])
def delete_gallery_image(image_id: int, db: Session = Depends(get_db)):
    repo = GalleryRepository(db)
    item = repo.get(image_id)
    if item is None:
        raise NotFoundError("Image not found")
    image_url = item.image_url or ""
    repo.delete(item)
    db.commit()
    if image_url.startswith(_UPLOAD_PREFIX):
        delete_stored_file(image_url[len(_UPLOAD_PREFIX):])
    return {"success": True}

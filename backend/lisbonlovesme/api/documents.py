"""
Downloadable documents (vouchers, terms, price lists) managed by the admin.
"""

from typing import Optional
import logging
import re
import secrets

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from lisbonlovesme.api.schemas import document_to_dict
from lisbonlovesme.core.exceptions import NotFoundError
from lisbonlovesme.core.security import require_admin
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import DocumentRepository
from lisbonlovesme.services.uploads import delete_stored_file, save_document, stored_file_path

logger = logging.getLogger(__name__)

router = APIRouter(tags=["documents"])


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "document"


def _unique_slug(repo: DocumentRepository, base: str) -> str:
    slug = base
    while repo.get_by_slug(slug) is not None:
        slug = f"{base}-{secrets.token_hex(3)}"
    return slug


@router.get("/documents", dependencies=[Depends(require_admin)])
def list_documents(db: Session = Depends(get_db)):
    return [document_to_dict(d) for d in DocumentRepository(db).list()]


@router.post("/documents", status_code=201, dependencies=[Depends(require_admin)])
async def upload_document(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    slug: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    stored = await save_document(file)
    repo = DocumentRepository(db)
    base = slugify(slug or title or stored.original_filename.rsplit(".", 1)[0])
    document = repo.create({
        "slug": _unique_slug(repo, base),
        "title": title or stored.original_filename,
        "original_filename": stored.original_filename,
        "stored_filename": stored.stored_filename,
        "mime_type": stored.mime_type,
        "size": stored.size,
    })
    db.commit()
    logger.info(f"Document {document.slug} uploaded ({stored.size} bytes)")
    return document_to_dict(document)


@router.delete("/documents/{document_id}", dependencies=[Depends(require_admin)])
def delete_document(document_id: int, db: Session = Depends(get_db)):
    repo = DocumentRepository(db)
    document = repo.get(document_id)
    if document is None:
        raise NotFoundError("Document not found")
    stored_filename = document.stored_filename
    repo.delete(document)
    db.commit()
    delete_stored_file(stored_filename)
    return {"success": True}


@router.get("/documents/{slug}/download")
def download_document(slug: str, db: Session = Depends(get_db)):
    document = DocumentRepository(db).get_by_slug(slug)
    if document is None:
        raise NotFoundError("Document not found")
    path = stored_file_path(document.stored_filename)
    if not path.exists():
        logger.error(f"Document {slug} is missing its file {document.stored_filename}")
        raise NotFoundError("Document file not found")
    return FileResponse(path, media_type=document.mime_type, filename=document.original_filename)

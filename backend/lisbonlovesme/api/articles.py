"""
Blog articles with an optional parent/child hierarchy.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lisbonlovesme.api.schemas import ArticleCreate, ArticleUpdate, article_to_dict
from lisbonlovesme.core.exceptions import ConflictError, NotFoundError, ValidationError
from lisbonlovesme.core.i18n import to_multilingual
from lisbonlovesme.core.security import require_admin
from lisbonlovesme.db.database import get_db
from lisbonlovesme.db.repositories import ArticleRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["articles"])

_MULTILINGUAL = ("title", "content", "excerpt")


def _article_data(body, partial: bool = False) -> Dict[str, Any]:
    data = body.model_dump(exclude_unset=partial)
    for field in _MULTILINGUAL:
        if field in data and data[field] is not None:
            data[field] = to_multilingual(data[field])
    return data


def _build_tree(articles, lang: Optional[str]) -> List[Dict[str, Any]]:
    nodes = {a.id: {**article_to_dict(a, lang), "children": []} for a in articles}
    roots = []
    for article in articles:
        node = nodes[article.id]
        parent = nodes.get(article.parent_id) if article.parent_id else None
        if parent is not None:
            parent["children"].append(node)
        else:
            roots.append(node)
    return roots


def _commit_or_conflict(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("An article with this slug already exists")


def _check_parent(repo: ArticleRepository, parent_id: Optional[int], article_id: Optional[int] = None) -> None:
    if parent_id is None:
        return
    if parent_id == article_id:
        raise ValidationError("An article cannot be its own parent")
    if repo.get(parent_id) is None:
        raise NotFoundError("Parent article not found")


@router.get("/articles")
def list_articles(lang: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return [article_to_dict(a, lang) for a in ArticleRepository(db).list(published_only=True)]


@router.get("/articles/tree")
def article_tree(lang: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return _build_tree(ArticleRepository(db).list(published_only=True), lang)


@router.get("/articles/slug/{slug}")
def get_article_by_slug(slug: str, lang: Optional[str] = Query(None), db: Session = Depends(get_db)):
    article = ArticleRepository(db).get_by_slug(slug)
    if article is None or not article.is_published:
        raise NotFoundError("Article not found")
    return article_to_dict(article, lang)


@router.get("/articles/{article_id}")
def get_article(article_id: int, lang: Optional[str] = Query(None), db: Session = Depends(get_db)):
    article = ArticleRepository(db).get(article_id)
    if article is None or not article.is_published:
        raise NotFoundError("Article not found")
    return article_to_dict(article, lang)


@router.get("/admin/articles", dependencies=[Depends(require_admin)])
def list_all_articles(db: Session = Depends(get_db)):
    return [article_to_dict(a) for a in ArticleRepository(db).list(published_only=False)]


@router.post("/articles", status_code=201, dependencies=[Depends(require_admin)])
def create_article(body: ArticleCreate, db: Session = Depends(get_db)):
    repo = ArticleRepository(db)
    if repo.get_by_slug(body.slug) is not None:
        raise ConflictError("An article with this slug already exists")
    _check_parent(repo, body.parent_id)
    data = _article_data(body)
    if data["is_published"]:
        data["published_at"] = datetime.utcnow()
    article = repo.create(data)
    _commit_or_conflict(db)
    logger.info(f"Article {article.slug} created")
    return article_to_dict(article)


@router.put("/articles/{article_id}", dependencies=[Depends(require_admin)])
def update_article(article_id: int, body: ArticleUpdate, db: Session = Depends(get_db)):
    repo = ArticleRepository(db)
    article = repo.get(article_id)
    if article is None:
        raise NotFoundError("Article not found")
    data = _article_data(body, partial=True)
    if data.get("slug") and data["slug"] != article.slug and repo.get_by_slug(data["slug"]) is not None:
        raise ConflictError("An article with this slug already exists")
    if "parent_id" in data:
        _check_parent(repo, data["parent_id"], article.id)
    if data.get("is_published") and not article.published_at:
        data["published_at"] = datetime.utcnow()
    repo.update(article, data)
    _commit_or_conflict(db)
    return article_to_dict(article)


@router.delete("/articles/{article_id}", dependencies=[Depends(require_admin)])
def delete_article(article_id: int, db: Session = Depends(get_db)):
    repo = ArticleRepository(db)
    article = repo.get(article_id)
    if article is None:
        raise NotFoundError("Article not found")
    repo.delete(article)
    db.commit()
    return {"success": True}

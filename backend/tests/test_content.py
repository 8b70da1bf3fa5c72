"""
Testimonials, articles, gallery, documents and uploads.
"""

import io

from lisbonlovesme.core.config import settings
from lisbonlovesme.db.models import Notification

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


# ----------------------------------------------------------------------------
# Testimonials
# ----------------------------------------------------------------------------

def test_testimonial_waits_for_approval(client, admin_client, db, tour):
    created = client.post(
        "/api/testimonials",
        json={"customerName": "John", "customerCountry": "UK", "rating": 5, "text": "Great!", "tourId": tour.id},
    )
    assert created.status_code == 201
    assert created.json()["isApproved"] is False
    assert client.get("/api/testimonials").json() == []
    assert db.query(Notification).filter(Notification.type == "review").count() == 1

    admin_client.put(f"/api/testimonials/{created.json()['id']}/approve")
    listed = client.get("/api/testimonials", params={"tourId": tour.id}).json()
    assert [t["customerName"] for t in listed] == ["John"]

    assert admin_client.delete(f"/api/testimonials/{created.json()['id']}").status_code == 200
    assert admin_client.get("/api/admin/testimonials").json() == []


def test_testimonial_rating_bounds(client, tour):
    body = {"customerName": "J", "customerCountry": "UK", "rating": 6, "text": "x", "tourId": tour.id}
    assert client.post("/api/testimonials", json=body).status_code == 400


# ----------------------------------------------------------------------------
# Articles
# ----------------------------------------------------------------------------

def _article(admin_client, slug, **extra):
    body = {"title": slug.title(), "slug": slug, "content": "Body", "isPublished": True}
    body.update(extra)
    return admin_client.post("/api/articles", json=body)


def test_article_crud_and_tree(client, admin_client):
    parent = _article(admin_client, "lisbon-guide").json()
    child = _article(admin_client, "best-viewpoints", parentId=parent["id"]).json()
    _article(admin_client, "draft-post", isPublished=False)

    assert parent["publishedAt"] is not None
    assert len(client.get("/api/articles").json()) == 2
    tree = client.get("/api/articles/tree").json()
    assert [n["slug"] for n in tree] == ["lisbon-guide"]
    assert [c["slug"] for c in tree[0]["children"]] == ["best-viewpoints"]

    assert client.get("/api/articles/slug/best-viewpoints").json()["id"] == child["id"]
    assert client.get("/api/articles/slug/draft-post").status_code == 404
    assert len(admin_client.get("/api/admin/articles").json()) == 3

    assert admin_client.delete(f"/api/articles/{parent['id']}").status_code == 200
    assert client.get(f"/api/articles/{child['id']}").json()["parentId"] is None


def test_duplicate_article_slug_conflicts(admin_client):
    assert _article(admin_client, "same-slug").status_code == 201
    assert _article(admin_client, "same-slug").status_code == 409
    other = _article(admin_client, "other-slug").json()
    assert admin_client.put(f"/api/articles/{other['id']}", json={"slug": "same-slug"}).status_code == 409


def test_article_localized_title(client, admin_client):
    _article(admin_client, "fado", title={"en": "Fado", "pt": "O Fado"})
    assert client.get("/api/articles/slug/fado", params={"lang": "pt"}).json()["localized"]["title"] == "O Fado"


# ----------------------------------------------------------------------------
# Gallery & uploads
# ----------------------------------------------------------------------------

def test_gallery_upload_reorder_delete(client, admin_client):
    first = admin_client.post(
        "/api/gallery",
        files={"image": ("tram.png", io.BytesIO(PNG_BYTES), "image/png")},
        data={"title": "Tram 28"},
    )
    assert first.status_code == 201, first.text
    second = admin_client.post("/api/gallery", files={"image": ("river.png", io.BytesIO(PNG_BYTES), "image/png")})
    first, second = first.json(), second.json()
    assert first["imageUrl"].startswith("/uploads/")
    assert client.get(first["imageUrl"]).content == PNG_BYTES

    admin_client.post("/api/gallery/reorder", json={"ids": [second["id"], first["id"]]})
    assert [g["id"] for g in client.get("/api/gallery").json()] == [second["id"], first["id"]]

    admin_client.put(f"/api/gallery/{second['id']}", json={"isActive": False})
    assert [g["id"] for g in client.get("/api/gallery").json()] == [first["id"]]

    assert admin_client.delete(f"/api/gallery/{first['id']}").status_code == 200
    assert client.get(first["imageUrl"]).status_code == 404


def test_upload_image_rejects_non_images(admin_client):
    response = admin_client.post(
        "/api/admin/upload-image", files={"image": ("notes.txt", io.BytesIO(b"hello"), "text/plain")}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Only image files are allowed"


def test_upload_image_size_limit(admin_client, monkeypatch):
    monkeypatch.setattr(settings, "max_image_bytes", 1024 * 1024)
    big = io.BytesIO(b"\x00" * (1024 * 1024 + 1))
    response = admin_client.post("/api/admin/upload-image", files={"image": ("big.png", big, "image/png")})
    assert response.status_code == 400
    assert response.json()["message"] == "File too large. Maximum size is 1MB."


def test_upload_image_returns_url(admin_client):
    response = admin_client.post(
        "/api/admin/upload-image", files={"image": ("a.png", io.BytesIO(PNG_BYTES), "image/png")}
    )
    assert response.status_code == 200
    assert response.json()["url"].endswith(".png")


# ----------------------------------------------------------------------------
# Documents
# ----------------------------------------------------------------------------

def test_document_upload_and_download(client, admin_client):
    uploaded = admin_client.post(
        "/api/documents",
        files={"file": ("Terms.pdf", io.BytesIO(b"%PDF-1.4 terms"), "application/pdf")},
        data={"title": "Terms and Conditions"},
    )
    assert uploaded.status_code == 201, uploaded.text
    document = uploaded.json()
    assert document["slug"] == "terms-and-conditions"

    download = client.get(f"/api/documents/{document['slug']}/download")
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 terms"
    assert download.headers["content-type"] == "application/pdf"

    again = admin_client.post(
        "/api/documents",
        files={"file": ("Terms.pdf", io.BytesIO(b"%PDF-1.4 v2"), "application/pdf")},
        data={"title": "Terms and Conditions"},
    ).json()
    assert again["slug"] != document["slug"]

    assert admin_client.delete(f"/api/documents/{document['id']}").status_code == 200
    assert client.get(f"/api/documents/{document['slug']}/download").status_code == 404


def test_document_type_whitelist(admin_client):
    response = admin_client.post(
        "/api/documents", files={"file": ("run.exe", io.BytesIO(b"MZ"), "application/x-msdownload")}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Unsupported file type"


def test_document_list_needs_admin(client):
    assert client.get("/api/documents").status_code == 401

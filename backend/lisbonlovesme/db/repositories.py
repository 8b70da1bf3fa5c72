"""
Repository pattern for data access.
Repositories flush but never commit: the route or service that owns the
unit of work decides when to commit.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from lisbonlovesme.db.models import (
    AdminSetting,
    Article,
    Availability,
    Booking,
    ClosedDay,
    ContactMessage,
    Device,
    DiscountCode,
    Document,
    GalleryImage,
    Notification,
    OutboxMessage,
    Testimonial,
    Tour,
    User,
)

logger = logging.getLogger(__name__)


def _apply(obj: Any, data: Dict[str, Any]) -> Any:
    for key, value in data.items():
        setattr(obj, key, value)
    return obj


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def create(self, username: str, password_hash: str, is_admin: bool = False) -> User:
        user = User(username=username, password_hash=password_hash, is_admin=is_admin)
        self.db.add(user)
        self.db.flush()
        return user


class TourRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, tour_id: int) -> Optional[Tour]:
        return self.db.get(Tour, tour_id)

    def list(self, active_only: bool = True) -> List[Tour]:
        query = self.db.query(Tour)
        if active_only:
            query = query.filter(Tour.is_active.is_(True))
        return query.order_by(Tour.id).all()

    def create(self, data: Dict[str, Any]) -> Tour:
        tour = Tour(**data)
        self.db.add(tour)
        self.db.flush()
        return tour

    def update(self, tour: Tour, data: Dict[str, Any]) -> Tour:
        _apply(tour, data)
        self.db.flush()
        return tour

    def delete(self, tour: Tour) -> None:
        self.db.delete(tour)
        self.db.flush()


class AvailabilityRepository:
    """
    Tour time slots. The only concurrent writer is booking creation, which
    goes through reserve_spots() so capacity can never go negative.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, availability_id: int) -> Optional[Availability]:
        return self.db.get(Availability, availability_id)

    def list(
        self,
        tour_id: Optional[int] = None,
        date: Optional[str] = None,
        include_closed: bool = False,
    ) -> List[Availability]:
        query = self.db.query(Availability)
        if tour_id is not None:
            query = query.filter(Availability.tour_id == tour_id)
        if date is not None:
            query = query.filter(Availability.date == date)
        if not include_closed:
            query = query.filter(~Availability.date.in_(select(ClosedDay.date)))
        return query.order_by(Availability.date, Availability.time).all()

    def create(self, data: Dict[str, Any]) -> Availability:
        availability = Availability(**data)
        self.db.add(availability)
        self.db.flush()
        return availability

    def update(self, availability: Availability, data: Dict[str, Any]) -> Availability:
        _apply(availability, data)
        self.db.flush()
        return availability

    def delete(self, availability: Availability) -> None:
        self.db.delete(availability)
        self.db.flush()

    def reserve_spots(self, availability_id: int, count: int) -> bool:
        """
        Conditionally take `count` spots. Returns False (and changes nothing)
        when fewer than `count` spots remain.
        """
        result = self.db.execute(
            update(Availability)
            .where(Availability.id == availability_id, Availability.spots_left >= count)
            .values(spots_left=Availability.spots_left - count)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class BookingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, booking_id: int) -> Optional[Booking]:
        return self.db.get(Booking, booking_id)

    def get_by_reference(self, reference: str) -> Optional[Booking]:
        return self.db.query(Booking).filter(Booking.booking_reference == reference).first()

    def reference_exists(self, reference: str) -> bool:
        return self.db.query(Booking.id).filter(Booking.booking_reference == reference).first() is not None

    def list(self, tour_id: Optional[int] = None, status: Optional[str] = None) -> List[Booking]:
        query = self.db.query(Booking)
        if tour_id is not None:
            query = query.filter(Booking.tour_id == tour_id)
        if status is not None:
            query = query.filter(Booking.payment_status == status)
        return query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    def create(self, data: Dict[str, Any]) -> Booking:
        booking = Booking(**data)
        self.db.add(booking)
        self.db.flush()
        return booking

    def update(self, booking: Booking, data: Dict[str, Any]) -> Booking:
        _apply(booking, data)
        self.db.flush()
        return booking


class DiscountRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, discount_id: int) -> Optional[DiscountCode]:
        return self.db.get(DiscountCode, discount_id)

    def get_by_code(self, code: str) -> Optional[DiscountCode]:
        return self.db.query(DiscountCode).filter(DiscountCode.code == code).first()

    def list(self) -> List[DiscountCode]:
        return self.db.query(DiscountCode).order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc()).all()

    def create(self, data: Dict[str, Any]) -> DiscountCode:
        discount = DiscountCode(**data)
        self.db.add(discount)
        self.db.flush()
        return discount

    def update(self, discount: DiscountCode, data: Dict[str, Any]) -> DiscountCode:
        _apply(discount, data)
        self.db.flush()
        return discount

    def delete(self, discount: DiscountCode) -> None:
        self.db.delete(discount)
        self.db.flush()

    def consume(self, discount_id: int) -> bool:
        """Increment used_count unless the usage limit has been reached."""
        result = self.db.execute(
            update(DiscountCode)
            .where(
                DiscountCode.id == discount_id,
                (DiscountCode.usage_limit.is_(None)) | (DiscountCode.used_count < DiscountCode.usage_limit),
            )
            .values(used_count=DiscountCode.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class ClosedDayRepository:
    def __init__(self, db: Session):
        self.db = db

    def list(self) -> List[ClosedDay]:
        return self.db.query(ClosedDay).order_by(ClosedDay.date).all()

    def get(self, date: str) -> Optional[ClosedDay]:
        return self.db.query(ClosedDay).filter(ClosedDay.date == date).first()

    def is_closed(self, date: str) -> bool:
        return self.get(date) is not None

    def close_day(self, date: str, reason: Optional[str] = None) -> ClosedDay:
        """Mark a date closed. Closing an already closed date returns the existing row."""
        existing = self.get(date)
        if existing is not None:
            return existing
        dialect = self.db.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        # ON CONFLICT DO NOTHING covers a concurrent close between the read and the insert
        self.db.execute(
            insert_fn(ClosedDay)
            .values(date=date, reason=reason or "Manually closed", created_at=datetime.utcnow())
            .on_conflict_do_nothing(index_elements=["date"])
        )
        return self.get(date)

    def reopen(self, date: str) -> bool:
        deleted = self.db.query(ClosedDay).filter(ClosedDay.date == date).delete(synchronize_session=False)
        return deleted > 0


class SettingsRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self) -> AdminSetting:
        setting = self.db.get(AdminSetting, 1)
        if setting is None:
            setting = AdminSetting(id=1, auto_close_day=False, last_updated=datetime.utcnow())
            self.db.add(setting)
            self.db.flush()
        return setting

    def update(self, auto_close_day: bool) -> AdminSetting:
        setting = self.get()
        setting.auto_close_day = auto_close_day
        setting.last_updated = datetime.utcnow()
        self.db.flush()
        return setting


class TestimonialRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, testimonial_id: int) -> Optional[Testimonial]:
        return self.db.get(Testimonial, testimonial_id)

    def list(self, tour_id: Optional[int] = None, approved_only: bool = True) -> List[Testimonial]:
        query = self.db.query(Testimonial)
        if tour_id is not None:
            query = query.filter(Testimonial.tour_id == tour_id)
        if approved_only:
            query = query.filter(Testimonial.is_approved.is_(True))
        return query.order_by(Testimonial.id.desc()).all()

    def create(self, data: Dict[str, Any]) -> Testimonial:
        testimonial = Testimonial(**data, is_approved=False)
        self.db.add(testimonial)
        self.db.flush()
        return testimonial

    def delete(self, testimonial: Testimonial) -> None:
        self.db.delete(testimonial)
        self.db.flush()


class ArticleRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, article_id: int) -> Optional[Article]:
        return self.db.get(Article, article_id)

    def get_by_slug(self, slug: str) -> Optional[Article]:
        return self.db.query(Article).filter(Article.slug == slug).first()

    def list(self, published_only: bool = True) -> List[Article]:
        query = self.db.query(Article)
        if published_only:
            query = query.filter(Article.is_published.is_(True))
        return query.order_by(Article.sort_order, Article.id).all()

    def create(self, data: Dict[str, Any]) -> Article:
        article = Article(**data)
        self.db.add(article)
        self.db.flush()
        return article

    def update(self, article: Article, data: Dict[str, Any]) -> Article:
        _apply(article, data)
        self.db.flush()
        return article

    def delete(self, article: Article) -> None:
        self.db.query(Article).filter(Article.parent_id == article.id).update(
            {Article.parent_id: None}, synchronize_session=False
        )
        self.db.delete(article)
        self.db.flush()


class GalleryRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, image_id: int) -> Optional[GalleryImage]:
        return self.db.get(GalleryImage, image_id)

    def list(self, active_only: bool = True) -> List[GalleryImage]:
        query = self.db.query(GalleryImage)
        if active_only:
            query = query.filter(GalleryImage.is_active.is_(True))
        return query.order_by(GalleryImage.display_order, GalleryImage.id).all()

    def next_display_order(self) -> int:
        current = self.db.query(func.max(GalleryImage.display_order)).scalar()
        return (current or 0) + 1

    def create(self, data: Dict[str, Any]) -> GalleryImage:
        image = GalleryImage(**data)
        self.db.add(image)
        self.db.flush()
        return image

    def update(self, image: GalleryImage, data: Dict[str, Any]) -> GalleryImage:
        _apply(image, data)
        self.db.flush()
        return image

    def delete(self, image: GalleryImage) -> None:
        self.db.delete(image)
        self.db.flush()

    def reorder(self, ids: List[int]) -> None:
        for position, image_id in enumerate(ids):
            self.db.query(GalleryImage).filter(GalleryImage.id == image_id).update(
                {GalleryImage.display_order: position}, synchronize_session=False
            )
        self.db.flush()


class DocumentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, document_id: int) -> Optional[Document]:
        return self.db.get(Document, document_id)

    def get_by_slug(self, slug: str) -> Optional[Document]:
        return self.db.query(Document).filter(Document.slug == slug).first()

    def list(self) -> List[Document]:
        return self.db.query(Document).order_by(Document.created_at.desc(), Document.id.desc()).all()

    def create(self, data: Dict[str, Any]) -> Document:
        document = Document(**data)
        self.db.add(document)
        self.db.flush()
        return document

    def delete(self, document: Document) -> None:
        self.db.delete(document)
        self.db.flush()


class NotificationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, notification_id: int) -> Optional[Notification]:
        return self.db.get(Notification, notification_id)

    def create(self, type: str, title: str, body: str, payload: Optional[Dict[str, Any]] = None) -> Notification:
        notification = Notification(type=type, title=title, body=body, payload=payload or {})
        self.db.add(notification)
        self.db.flush()
        return notification

    def list(self, limit: int = 50, offset: int = 0) -> List[Notification]:
        return (
            self.db.query(Notification)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )

    def unread_count(self) -> int:
        return self.db.query(Notification).filter(Notification.read.is_(False)).count()

    def mark_all_read(self) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.read.is_(False))
            .update({Notification.read: True}, synchronize_session=False)
        )


class DeviceRepository:
    def __init__(self, db: Session):
        self.db = db

    def register(self, platform: str, token: str) -> Device:
        device = self.db.query(Device).filter(Device.token == token).first()
        if device is None:
            device = Device(platform=platform, token=token)
            self.db.add(device)
        device.platform = platform
        device.is_active = True
        device.last_active_at = datetime.utcnow()
        self.db.flush()
        return device

    def deactivate(self, token: str) -> bool:
        updated = (
            self.db.query(Device)
            .filter(Device.token == token)
            .update({Device.is_active: False}, synchronize_session=False)
        )
        return updated > 0

    def active_tokens(self) -> List[str]:
        return [row[0] for row in self.db.query(Device.token).filter(Device.is_active.is_(True)).all()]


class ContactMessageRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, message_id: int) -> Optional[ContactMessage]:
        return self.db.get(ContactMessage, message_id)

    def create(self, data: Dict[str, Any]) -> ContactMessage:
        message = ContactMessage(**data)
        self.db.add(message)
        self.db.flush()
        return message

    def list(self, limit: int = 50, offset: int = 0) -> List[ContactMessage]:
        return (
            self.db.query(ContactMessage)
            .order_by(ContactMessage.created_at.desc(), ContactMessage.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )


class OutboxRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, kind: str, payload: Dict[str, Any]) -> OutboxMessage:
        message = OutboxMessage(kind=kind, payload=payload, status="pending",
                                attempts=0, next_attempt_at=datetime.utcnow())
        self.db.add(message)
        self.db.flush()
        return message

    def due(self, now: datetime, limit: int) -> List[OutboxMessage]:
        return (
            self.db.query(OutboxMessage)
            .filter(OutboxMessage.status == "pending", OutboxMessage.next_attempt_at <= now)
            .order_by(OutboxMessage.id)
            .limit(limit)
            .all()
        )

    def list(self, status: Optional[str] = None) -> List[OutboxMessage]:
        query = self.db.query(OutboxMessage)
        if status is not None:
            query = query.filter(OutboxMessage.status == status)
        return query.order_by(OutboxMessage.id).all()

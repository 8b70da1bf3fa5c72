"""
Database models -- SQLAlchemy ORM definitions.
Compatible with both PostgreSQL and SQLite.
Multilingual text columns hold {"en": ..., "pt": ..., "ru": ...}.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(Text, unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)


class Tour(Base):
    """A bookable tour. Price is in cents, per person or per group."""
    __tablename__ = "tours"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(JSON, nullable=False)
    short_description = Column(JSON)
    description = Column(JSON, nullable=False)
    image_url = Column(Text, nullable=False, default="")
    duration = Column(JSON, nullable=False)
    max_group_size = Column(Integer, nullable=False)
    difficulty = Column(JSON, nullable=False)
    price = Column(Integer, nullable=False)
    price_type = Column(Text, nullable=False, default="per_person")
    badge = Column(JSON)
    badge_color = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)

    availabilities = relationship(
        "Availability", back_populates="tour", cascade="all, delete-orphan", passive_deletes=True
    )


class Availability(Base):
    """A date + time slot of one tour with a remaining-capacity counter."""
    __tablename__ = "availabilities"
    __table_args__ = (
        CheckConstraint("spots_left >= 0", name="ck_availability_spots_left_non_negative"),
        CheckConstraint("spots_left <= max_spots", name="ck_availability_spots_left_le_max"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Text, nullable=False, index=True)  # YYYY-MM-DD
    time = Column(Text, nullable=False)  # HH:MM
    max_spots = Column(Integer, nullable=False)
    spots_left = Column(Integer, nullable=False)

    tour = relationship("Tour", back_populates="availabilities")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)
    availability_id = Column(
        Integer, ForeignKey("availabilities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_first_name = Column(Text, nullable=False)
    customer_last_name = Column(Text, nullable=False)
    customer_email = Column(Text, nullable=False)
    customer_phone = Column(Text, nullable=False)
    number_of_participants = Column(Integer, nullable=False)
    special_requests = Column(Text)
    booking_reference = Column(Text, unique=True, nullable=False, index=True)
    total_amount = Column(Integer, nullable=False)
    payment_status = Column(Text, nullable=False, default="requested", index=True)
    stripe_payment_intent_id = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    additional_info = Column(JSON)
    meeting_point = Column(Text)
    reminders_sent = Column(Boolean, default=False)
    confirmed_date = Column(Text)
    confirmed_time = Column(Text)
    confirmed_meeting_point = Column(Text)
    admin_notes = Column(Text)
    language = Column(Text, default="en")

    tour = relationship("Tour")
    availability = relationship("Availability")


class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(Text, unique=True, nullable=False, index=True)
    name = Column(Text, nullable=False, default="")
    category = Column(Text, nullable=False)  # percentage | fixed_value | free_tour
    value = Column(Integer, nullable=False)
    valid_until = Column(DateTime)
    usage_limit = Column(Integer)
    used_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ClosedDay(Base):
    __tablename__ = "closed_days"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Text, unique=True, nullable=False)
    reason = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


class AdminSetting(Base):
    """Singleton row (id=1)."""
    __tablename__ = "admin_settings"

    id = Column(Integer, primary_key=True)
    auto_close_day = Column(Boolean, nullable=False, default=False)
    last_updated = Column(DateTime, default=datetime.utcnow)


class Testimonial(Base):
    __tablename__ = "testimonials"

    id = Column(Integer, primary_key=True, index=True)
    customer_name = Column(Text, nullable=False)
    customer_country = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    is_approved = Column(Boolean, nullable=False, default=False)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True)


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(JSON, nullable=False)
    slug = Column(Text, unique=True, nullable=False, index=True)
    content = Column(JSON, nullable=False)
    excerpt = Column(JSON)
    featured_image = Column(Text)
    parent_id = Column(Integer, ForeignKey("articles.id", ondelete="SET NULL"))
    sort_order = Column(Integer, default=0)
    is_published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GalleryImage(Base):
    __tablename__ = "gallery"

    id = Column(Integer, primary_key=True, index=True)
    image_url = Column(Text, nullable=False)
    title = Column(Text)
    description = Column(Text)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(Text, unique=True, nullable=False, index=True)
    title = Column(Text)
    original_filename = Column(Text, nullable=False)
    stored_filename = Column(Text, nullable=False)
    mime_type = Column(Text, nullable=False)
    size = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Notification(Base):
    """Admin inbox entry: booking, review, contact or visit."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    payload = Column(JSON)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class ContactMessage(Base):
    __tablename__ = "contact_messages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    subject = Column(Text)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Device(Base):
    """Mobile device registered for push notifications."""
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)
    platform = Column(Text, nullable=False)
    token = Column(Text, unique=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_active_at = Column(DateTime)


class OutboxMessage(Base):
    """Side effect waiting to be delivered (email, notification push)."""
    __tablename__ = "outbox_messages"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime, default=datetime.utcnow, index=True)
    last_error = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    sent_at = Column(DateTime)

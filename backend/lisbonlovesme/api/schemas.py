"""
Request bodies and response serializers.

The public API speaks camelCase JSON; request models accept both the camelCase
alias and the snake_case field name.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
import re

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from lisbonlovesme.core.i18n import localize_fields
from lisbonlovesme.db.models import (
    Article,
    Availability,
    Booking,
    ContactMessage,
    DiscountCode,
    Document,
    GalleryImage,
    Testimonial,
    Tour,
)
from lisbonlovesme.services.discounts import CATEGORIES, PRICE_TYPES
from lisbonlovesme.services.uploads import uploaded_file_url

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}$")

MultilingualInput = Union[str, Dict[str, str]]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_date(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not _DATE_RE.match(value):
        raise ValueError("date must be YYYY-MM-DD")
    datetime.strptime(value, "%Y-%m-%d")
    return value


def _check_time(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not _TIME_RE.match(value):
        raise ValueError("time must be HH:MM")
    datetime.strptime(value, "%H:%M")
    return value


def _reject_nulls(model: BaseModel, *fields: str) -> BaseModel:
    """Partial updates may omit these fields but not send them as null."""
    for name in fields:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{to_camel(name)} cannot be null")
    return model


# ============================================================================
# Requests
# ============================================================================

class BookingCreate(CamelModel):
    tour_id: int
    availability_id: int
    customer_first_name: str = Field(..., min_length=1, max_length=200)
    customer_last_name: str = Field(..., min_length=1, max_length=200)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=1, max_length=50)
    number_of_participants: int = Field(..., ge=1)
    special_requests: Optional[str] = None
    discount_code: Optional[str] = None
    language: Optional[str] = None


class BookingRequestUpdate(CamelModel):
    confirmed_date: Optional[str] = None
    confirmed_time: Optional[str] = None
    confirmed_meeting_point: Optional[str] = None
    admin_notes: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    special_requests: Optional[str] = None

    @field_validator("confirmed_date")
    @classmethod
    def valid_date(cls, v: Optional[str]) -> Optional[str]:
        return _check_date(v)

    @field_validator("confirmed_time")
    @classmethod
    def valid_time(cls, v: Optional[str]) -> Optional[str]:
        return _check_time(v)


class RefundRequest(CamelModel):
    reason: Optional[str] = None


class DiscountValidate(CamelModel):
    code: str = Field(..., min_length=1)
    tour_id: int
    participants: int = Field(1, ge=1)


class DiscountCreate(CamelModel):
    code: str = Field(..., min_length=1, max_length=64)
    name: str = ""
    category: str
    value: int = Field(..., ge=0)
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    one_time: bool = False
    is_active: bool = True

    @field_validator("category")
    @classmethod
    def known_category(cls, v: str) -> str:
        if v not in CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(CATEGORIES)}")
        return v

    @model_validator(mode="after")
    def percentage_range(self):
        if self.category == "percentage" and self.value > 100:
            raise ValueError("percentage value must be between 0 and 100")
        if self.one_time:
            self.usage_limit = 1
        return self


class DiscountUpdate(CamelModel):
    code: Optional[str] = Field(None, min_length=1, max_length=64)
    name: Optional[str] = None
    category: Optional[str] = None
    value: Optional[int] = Field(None, ge=0)
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    one_time: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("category")
    @classmethod
    def known_category(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(CATEGORIES)}")
        return v

    @model_validator(mode="after")
    def required_columns(self) -> "DiscountUpdate":
        return _reject_nulls(self, "code", "category", "value", "is_active")


class TourCreate(CamelModel):
    name: MultilingualInput
    short_description: Optional[MultilingualInput] = None
    description: MultilingualInput
    image_url: str = ""
    duration: MultilingualInput
    max_group_size: int = Field(..., ge=1)
    difficulty: MultilingualInput
    price: int = Field(..., ge=0)
    price_type: str = "per_person"
    badge: Optional[MultilingualInput] = None
    badge_color: Optional[str] = None
    is_active: bool = True

    @field_validator("price_type")
    @classmethod
    def known_price_type(cls, v: str) -> str:
        if v not in PRICE_TYPES:
            raise ValueError(f"priceType must be one of {', '.join(PRICE_TYPES)}")
        return v


class TourUpdate(CamelModel):
    name: Optional[MultilingualInput] = None
    short_description: Optional[MultilingualInput] = None
    description: Optional[MultilingualInput] = None
    image_url: Optional[str] = None
    duration: Optional[MultilingualInput] = None
    max_group_size: Optional[int] = Field(None, ge=1)
    difficulty: Optional[MultilingualInput] = None
    price: Optional[int] = Field(None, ge=0)
    price_type: Optional[str] = None
    badge: Optional[MultilingualInput] = None
    badge_color: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("price_type")
    @classmethod
    def known_price_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in PRICE_TYPES:
            raise ValueError(f"priceType must be one of {', '.join(PRICE_TYPES)}")
        return v

    @model_validator(mode="after")
    def required_columns(self) -> "TourUpdate":
        return _reject_nulls(
            self, "name", "description", "duration", "max_group_size", "difficulty", "price", "price_type", "is_active"
        )


class AvailabilityCreate(CamelModel):
    tour_id: int
    date: str
    time: str
    max_spots: int = Field(..., ge=1)
    spots_left: Optional[int] = Field(None, ge=0)

    @field_validator("date")
    @classmethod
    def valid_date(cls, v: Optional[str]) -> Optional[str]:
        return _check_date(v)

    @field_validator("time")
    @classmethod
    def valid_time(cls, v: Optional[str]) -> Optional[str]:
        return _check_time(v)


class AvailabilityUpdate(CamelModel):
    date: Optional[str] = None
    time: Optional[str] = None
    max_spots: Optional[int] = Field(None, ge=1)
    spots_left: Optional[int] = Field(None, ge=0)

    @field_validator("date")
    @classmethod
    def valid_date(cls, v: Optional[str]) -> Optional[str]:
        return _check_date(v)

    @field_validator("time")
    @classmethod
    def valid_time(cls, v: Optional[str]) -> Optional[str]:
        return _check_time(v)

    @model_validator(mode="after")
    def required_columns(self) -> "AvailabilityUpdate":
        return _reject_nulls(self, "date", "time", "max_spots", "spots_left")


class ClosedDayCreate(CamelModel):
    date: str
    reason: Optional[str] = None

    @field_validator("date")
    @classmethod
    def valid_date(cls, v: Optional[str]) -> Optional[str]:
        return _check_date(v)


class TestimonialCreate(CamelModel):
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_country: str = Field(..., min_length=1, max_length=100)
    rating: int = Field(..., ge=1, le=5)
    text: str = Field(..., min_length=1)
    tour_id: int


class ArticleCreate(CamelModel):
    title: MultilingualInput
    slug: str = Field(..., min_length=1, max_length=200, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    content: MultilingualInput
    excerpt: Optional[MultilingualInput] = None
    featured_image: Optional[str] = None
    parent_id: Optional[int] = None
    sort_order: int = 0
    is_published: bool = False


class ArticleUpdate(CamelModel):
    title: Optional[MultilingualInput] = None
    slug: Optional[str] = Field(None, min_length=1, max_length=200, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    content: Optional[MultilingualInput] = None
    excerpt: Optional[MultilingualInput] = None
    featured_image: Optional[str] = None
    parent_id: Optional[int] = None
    sort_order: Optional[int] = None
    is_published: Optional[bool] = None


class GalleryUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class GalleryReorder(CamelModel):
    ids: List[int]


class ContactCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    subject: Optional[str] = Field(None, max_length=300)
    message: str = Field(..., min_length=1, max_length=5000)


class VisitCreate(CamelModel):
    path: Optional[str] = Field(None, max_length=500)


class DeviceRegister(CamelModel):
    platform: str = Field(..., pattern=r"^(ios|android|web)$")
    token: str = Field(..., min_length=1)


class LoginRequest(CamelModel):
    username: str
    password: str


class PasswordChange(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class SettingsUpdate(CamelModel):
    auto_close_day: bool


# ============================================================================
# Responses
# ============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def tour_to_dict(tour: Tour, lang: Optional[str] = None) -> Dict[str, Any]:
    data = {
        "id": tour.id,
        "name": tour.name,
        "shortDescription": tour.short_description,
        "description": tour.description,
        "imageUrl": tour.image_url,
        "duration": tour.duration,
        "maxGroupSize": tour.max_group_size,
        "difficulty": tour.difficulty,
        "price": tour.price,
        "priceType": tour.price_type,
        "badge": tour.badge,
        "badgeColor": tour.badge_color,
        "isActive": tour.is_active,
    }
    if lang:
        data["localized"] = localize_fields(
            data, ("name", "shortDescription", "description", "duration", "difficulty", "badge"), lang
        )
    return data


def availability_to_dict(availability: Availability) -> Dict[str, Any]:
    return {
        "id": availability.id,
        "tourId": availability.tour_id,
        "date": availability.date,
        "time": availability.time,
        "maxSpots": availability.max_spots,
        "spotsLeft": availability.spots_left,
    }


def booking_to_dict(booking: Booking) -> Dict[str, Any]:
    return {
        "id": booking.id,
        "tourId": booking.tour_id,
        "availabilityId": booking.availability_id,
        "customerFirstName": booking.customer_first_name,
        "customerLastName": booking.customer_last_name,
        "customerEmail": booking.customer_email,
        "customerPhone": booking.customer_phone,
        "numberOfParticipants": booking.number_of_participants,
        "specialRequests": booking.special_requests,
        "bookingReference": booking.booking_reference,
        "totalAmount": booking.total_amount,
        "paymentStatus": booking.payment_status,
        "stripePaymentIntentId": booking.stripe_payment_intent_id,
        "createdAt": _iso(booking.created_at),
        "additionalInfo": booking.additional_info or {},
        "meetingPoint": booking.meeting_point,
        "remindersSent": bool(booking.reminders_sent),
        "confirmedDate": booking.confirmed_date,
        "confirmedTime": booking.confirmed_time,
        "confirmedMeetingPoint": booking.confirmed_meeting_point,
        "adminNotes": booking.admin_notes,
        "language": booking.language,
    }


def booking_with_details(booking: Booking) -> Dict[str, Any]:
    data = booking_to_dict(booking)
    data["tour"] = tour_to_dict(booking.tour) if booking.tour else None
    data["availability"] = availability_to_dict(booking.availability) if booking.availability else None
    return data


def discount_to_dict(discount: DiscountCode) -> Dict[str, Any]:
    return {
        "id": discount.id,
        "code": discount.code,
        "name": discount.name,
        "category": discount.category,
        "value": discount.value,
        "validUntil": _iso(discount.valid_until),
        "usageLimit": discount.usage_limit,
        "usedCount": discount.used_count,
        "oneTime": discount.usage_limit == 1,
        "isActive": discount.is_active,
        "createdAt": _iso(discount.created_at),
    }


def testimonial_to_dict(testimonial: Testimonial) -> Dict[str, Any]:
    return {
        "id": testimonial.id,
        "customerName": testimonial.customer_name,
        "customerCountry": testimonial.customer_country,
        "rating": testimonial.rating,
        "text": testimonial.text,
        "isApproved": testimonial.is_approved,
        "tourId": testimonial.tour_id,
    }


def article_to_dict(article: Article, lang: Optional[str] = None) -> Dict[str, Any]:
    data = {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "content": article.content,
        "excerpt": article.excerpt,
        "featuredImage": article.featured_image,
        "parentId": article.parent_id,
        "sortOrder": article.sort_order,
        "isPublished": article.is_published,
        "publishedAt": _iso(article.published_at),
        "createdAt": _iso(article.created_at),
        "updatedAt": _iso(article.updated_at),
    }
    if lang:
        data["localized"] = localize_fields(data, ("title", "content", "excerpt"), lang)
    return data


def gallery_to_dict(image: GalleryImage) -> Dict[str, Any]:
    return {
        "id": image.id,
        "imageUrl": image.image_url,
        "title": image.title,
        "description": image.description,
        "displayOrder": image.display_order,
        "isActive": image.is_active,
        "createdAt": _iso(image.created_at),
        "updatedAt": _iso(image.updated_at),
    }


def document_to_dict(document: Document) -> Dict[str, Any]:
    return {
        "id": document.id,
        "slug": document.slug,
        "title": document.title,
        "originalFilename": document.original_filename,
        "mimeType": document.mime_type,
        "size": document.size,
        "url": uploaded_file_url(document.stored_filename),
        "downloadUrl": f"/api/documents/{document.slug}/download",
        "createdAt": _iso(document.created_at),
    }


def contact_to_dict(message: ContactMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "name": message.name,
        "email": message.email,
        "subject": message.subject,
        "message": message.message,
        "read": bool(message.read),
        "createdAt": _iso(message.created_at),
    }

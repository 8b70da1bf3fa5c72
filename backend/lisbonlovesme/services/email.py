"""
Transactional email over SMTP.

Messages are built from booking payloads (plain dicts, as stored in the
outbox) and sent with smtplib on a worker thread. While smtp_host is unset
every send is logged and skipped.
"""

from dataclasses import dataclass, field
from datetime import datetime
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import logging
import smtplib

from lisbonlovesme.core.config import settings
from lisbonlovesme.core.exceptions import UpstreamError
from lisbonlovesme.core.i18n import normalize_language
from lisbonlovesme.services.ics import generate_ics, parse_duration_hours
from lisbonlovesme.services.translations import t

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    subject: str
    to: List[str]
    body_text: str
    body_html: Optional[str] = None
    # (filename, content, mime subtype) e.g. ("tour.ics", "...", "calendar")
    attachments: List[Tuple[str, str, str]] = field(default_factory=list)


def format_amount(cents: Optional[int]) -> str:
    return f"€{(cents or 0) / 100:.2f}"


def build_mime(message: EmailMessage) -> MIMEMultipart:
    mime = MIMEMultipart("mixed")
    mime["Subject"] = message.subject
    mime["From"] = settings.email_from
    mime["To"] = ", ".join(message.to)

    body = MIMEMultipart("alternative")
    body.attach(MIMEText(message.body_text, "plain", "utf-8"))
    if message.body_html:
        body.attach(MIMEText(message.body_html, "html", "utf-8"))
    mime.attach(body)

    for filename, content, subtype in message.attachments:
        part = MIMEApplication(content.encode("utf-8"), _subtype=subtype)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        mime.attach(part)
    return mime


def _send_smtp(mime: MIMEMultipart) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
        if settings.smtp_use_tls:
            server.starttls()
        if settings.smtp_user and settings.smtp_password:
            server.login(settings.smtp_user, settings.smtp_password)
        server.send_message(mime)


async def send_email(message: EmailMessage) -> bool:
    """Send one message. Returns False when SMTP is not configured."""
    if not settings.smtp_host:
        logger.info(f"SMTP not configured, skipping email '{message.subject}' to {message.to}")
        return False
    mime = build_mime(message)
    try:
        await asyncio.to_thread(_send_smtp, mime)
    except (smtplib.SMTPException, OSError) as e:
        raise UpstreamError(f"Email delivery failed: {e}")
    logger.info(f"Email '{message.subject}' sent to {message.to}")
    return True


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _summary_rows(payload: Dict[str, Any], lang: str, confirmed: bool = False) -> List[Tuple[str, str]]:
    date = payload.get("confirmedDate") if confirmed and payload.get("confirmedDate") else payload.get("date")
    time = payload.get("confirmedTime") if confirmed and payload.get("confirmedTime") else payload.get("time")
    rows = [
        (t("label_reference", lang), payload["reference"]),
        (t("label_tour", lang), payload["tourName"]),
        (t("label_date", lang), date or ""),
        (t("label_time", lang), time or ""),
        (t("label_participants", lang), str(payload["participants"])),
    ]
    if payload.get("discountAmount"):
        rows.append((t("label_discount", lang), "-" + format_amount(payload["discountAmount"])))
    rows.append((t("label_total", lang), format_amount(payload["totalAmount"])))
    meeting_point = payload.get("confirmedMeetingPoint") or payload.get("meetingPoint")
    if confirmed and meeting_point:
        rows.append((t("label_meeting_point", lang), meeting_point))
    return rows


def _render(greeting: str, intro: str, rows: List[Tuple[str, str]], lang: str,
            cta: Optional[Tuple[str, str]] = None) -> Tuple[str, str]:
    signature = t("signature", lang)
    text_lines = [greeting, "", intro, ""]
    text_lines += [f"{label}: {value}" for label, value in rows]
    if cta:
        text_lines += ["", f"{cta[0]}: {cta[1]}"]
    text_lines += ["", signature]

    table = "".join(
        f"<tr><td style=\"padding:4px 12px 4px 0;color:#666\">{escape(label)}</td>"
        f"<td style=\"padding:4px 0\"><strong>{escape(value)}</strong></td></tr>"
        for label, value in rows
    )
    button = ""
    if cta:
        button = (
            f"<p style=\"text-align:center;margin:30px 0\"><a href=\"{escape(cta[1])}\" "
            f"style=\"background:#667eea;color:#fff;padding:14px 28px;text-decoration:none;"
            f"border-radius:5px\">{escape(cta[0])}</a></p>"
        )
    html = (
        "<div style=\"max-width:600px;margin:0 auto;font-family:Arial,sans-serif\">"
        "<div style=\"background:#667eea;padding:24px;text-align:center;color:#fff\">"
        "<h1 style=\"margin:0\">Lisbonlovesme</h1></div>"
        f"<div style=\"padding:30px\"><p>{escape(greeting)}</p><p>{escape(intro)}</p>"
        f"<table>{table}</table>{button}"
        f"<p style=\"color:#666\">{escape(signature).replace(chr(10), '<br>')}</p></div>"
        f"<div style=\"background:#f8f9fa;padding:16px;text-align:center;color:#888;font-size:12px\">"
        f"© {datetime.utcnow().year} Lisbonlovesme Tours</div></div>"
    )
    return "\n".join(text_lines), html


def request_received_email(payload: Dict[str, Any]) -> EmailMessage:
    lang = normalize_language(payload.get("language"))
    text, html = _render(
        t("greeting", lang, name=payload["customerFirstName"]),
        t("request_intro", lang),
        _summary_rows(payload, lang),
        lang,
    )
    return EmailMessage(
        subject=t("request_subject", lang, reference=payload["reference"]),
        to=[payload["customerEmail"]],
        body_text=text,
        body_html=html,
    )


def admin_new_booking_email(payload: Dict[str, Any], admin_email: str) -> EmailMessage:
    rows = _summary_rows(payload, "en") + [
        ("Customer", f"{payload['customerFirstName']} {payload['customerLastName']}"),
        ("Email", payload["customerEmail"]),
        ("Phone", payload.get("customerPhone") or ""),
        ("Language", payload.get("language") or "en"),
        ("Special requests", payload.get("specialRequests") or "-"),
    ]
    if payload.get("discountCode"):
        rows.append(("Discount code", payload["discountCode"]))
    text, html = _render("Hello,", "A new booking request has arrived.", rows, "en",
                         cta=("Open booking requests", f"{settings.site_url}/admin/requests"))
    return EmailMessage(
        subject=t("admin_new_booking_subject", "en", reference=payload["reference"], tour=payload["tourName"]),
        to=[admin_email],
        body_text=text,
        body_html=html,
    )


def booking_confirmed_email(payload: Dict[str, Any]) -> EmailMessage:
    lang = normalize_language(payload.get("language"))
    date = payload.get("confirmedDate") or payload["date"]
    time = payload.get("confirmedTime") or payload["time"]
    meeting_point = payload.get("confirmedMeetingPoint") or payload.get("meetingPoint") or "Lisbon, Portugal"
    start = datetime.strptime(f"{date} {time}", "%Y-%m-%d %H:%M")
    ics = generate_ics(
        summary=f"Lisbonlovesme Tour: {payload['tourName']}",
        description=(
            f"Booking Reference: {payload['reference']}\n"
            f"Number of Participants: {payload['participants']}\n"
            f"Total Amount: {format_amount(payload['totalAmount'])}\n\n"
            "Please arrive 15 minutes before the tour starts."
        ),
        location=meeting_point,
        start=start,
        duration_hours=parse_duration_hours(payload.get("duration")),
        url=f"{settings.site_url}/bookings/{payload['reference']}",
        tzid=settings.tour_timezone,
    )
    text, html = _render(
        t("greeting", lang, name=payload["customerFirstName"]),
        t("confirmed_intro", lang),
        _summary_rows(payload, lang, confirmed=True),
        lang,
    )
    return EmailMessage(
        subject=t("confirmed_subject", lang, tour=payload["tourName"]),
        to=[payload["customerEmail"]],
        body_text=text,
        body_html=html,
        attachments=[("lisbonlovesme-tour.ics", ics, "calendar")],
    )


def review_request_email(payload: Dict[str, Any]) -> EmailMessage:
    lang = normalize_language(payload.get("language"))
    review_url = f"{settings.site_url}/review/{payload['reference']}"
    text, html = _render(
        t("greeting", lang, name=payload["customerFirstName"]),
        t("review_intro", lang),
        [(t("label_reference", lang), payload["reference"]), (t("label_tour", lang), payload["tourName"])],
        lang,
        cta=(t("review_cta", lang), review_url),
    )
    return EmailMessage(
        subject=t("review_subject", lang, tour=payload["tourName"]),
        to=[payload["customerEmail"]],
        body_text=text,
        body_html=html,
    )

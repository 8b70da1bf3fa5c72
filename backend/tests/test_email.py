"""
ICS generation and email templates.
"""

from datetime import datetime

from lisbonlovesme.services.email import (
    booking_confirmed_email,
    build_mime,
    format_amount,
    request_received_email,
)
from lisbonlovesme.services.ics import escape_text, generate_ics, parse_duration_hours

PAYLOAD = {
    "reference": "LT-ABC1234",
    "tourName": "Alfama Walk",
    "duration": "3 hours",
    "date": "2030-05-01",
    "time": "10:00",
    "participants": 2,
    "totalAmount": 8100,
    "discountAmount": 900,
    "discountCode": "SAVE10",
    "customerFirstName": "Ana",
    "customerLastName": "Silva",
    "customerEmail": "ana@example.com",
    "customerPhone": "+351900000000",
    "language": "pt",
    "meetingPoint": "Largo do Chafariz de Dentro",
}


def test_parse_duration_hours():
    assert parse_duration_hours("3 hours") == 3
    assert parse_duration_hours("8h") == 8
    assert parse_duration_hours("half day") == 3
    assert parse_duration_hours(None) == 3


def test_escape_text():
    assert escape_text("a,b;c\nd") == "a\\,b\\;c\\nd"


def test_ics_uses_crlf_and_tzid():
    ics = generate_ics(
        summary="Tour",
        description="Line one\nLine two",
        location="Lisbon, Portugal",
        start=datetime(2030, 5, 1, 10, 0),
        duration_hours=3,
        tzid="Europe/Lisbon",
        uid="fixed@lisbonlovesme.com",
        now=datetime(2030, 1, 1, 12, 0),
    )
    lines = ics.split("\r\n")
    assert lines[0] == "BEGIN:VCALENDAR"
    assert "DTSTART;TZID=Europe/Lisbon:20300501T100000" in lines
    assert "DTEND;TZID=Europe/Lisbon:20300501T130000" in lines
    assert "DTSTAMP:20300101T120000Z" in lines
    assert "LOCATION:Lisbon\\, Portugal" in lines
    assert "DESCRIPTION:Line one\\nLine two" in lines
    assert ics.endswith("END:VCALENDAR\r\n")
    assert "\n" not in ics.replace("\r\n", "")


def test_ics_utc_when_no_tzid():
    ics = generate_ics("T", "D", "L", datetime(2030, 5, 1, 9, 0), duration_hours=2)
    assert "DTSTART:20300501T090000Z" in ics
    assert "DTEND:20300501T110000Z" in ics


def test_format_amount():
    assert format_amount(4500) == "€45.00"
    assert format_amount(None) == "€0.00"


def test_request_received_email_is_localized():
    message = request_received_email(PAYLOAD)
    assert message.to == ["ana@example.com"]
    assert "LT-ABC1234" in message.subject
    assert "€81.00" in message.body_text
    assert "-€9.00" in message.body_text


def test_confirmed_email_has_calendar_attachment():
    payload = dict(PAYLOAD, confirmedTime="11:30", language="en")
    message = booking_confirmed_email(payload)
    filename, content, subtype = message.attachments[0]
    assert filename.endswith(".ics")
    assert subtype == "calendar"
    assert "T113000" in content

    mime = build_mime(message)
    assert mime["To"] == "ana@example.com"
    assert len(mime.get_payload()) == 2

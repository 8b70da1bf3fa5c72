"""
Lisbonlovesme -- Email Translations
Supports: en, pt, ru
Use  t(key, lang, **kwargs)  for single strings.
Dynamic values use {placeholders} -- pass as kwargs to t().
"""


def t(key: str, lang: str = "en", **kwargs) -> str:
    """Return translated string, falling back to English."""
    entry = _T.get(key, {})
    text = entry.get(lang) or entry.get("en", key)
    if kwargs:
        try:
            text = text.format(**kwargs)
        except (KeyError, IndexError):
            pass
    return text


_T = {
    # ---- Request received (customer) ----
    "request_subject": {
        "en": "We received your booking request {reference}",
        "pt": "Recebemos o seu pedido de reserva {reference}",
        "ru": "Мы получили ваш запрос на бронирование {reference}",
    },
    "request_intro": {
        "en": "Thank you for your booking request. We will confirm the details with you shortly.",
        "pt": "Obrigado pelo seu pedido de reserva. Vamos confirmar os detalhes em breve.",
        "ru": "Спасибо за ваш запрос. Мы скоро подтвердим детали бронирования.",
    },
    # ---- Booking confirmed (customer) ----
    "confirmed_subject": {
        "en": "Your tour is confirmed: {tour}",
        "pt": "O seu tour está confirmado: {tour}",
        "ru": "Ваш тур подтверждён: {tour}",
    },
    "confirmed_intro": {
        "en": "Your booking has been confirmed. The calendar invite is attached. Please arrive 15 minutes before the tour starts.",
        "pt": "A sua reserva foi confirmada. O convite de calendário segue em anexo. Chegue 15 minutos antes do início do tour.",
        "ru": "Ваше бронирование подтверждено. Приглашение в календарь во вложении. Пожалуйста, приходите за 15 минут до начала тура.",
    },
    # ---- Review request (customer) ----
    "review_subject": {
        "en": "How was your {tour} experience?",
        "pt": "Como foi a sua experiência no {tour}?",
        "ru": "Как вам экскурсия {tour}?",
    },
    "review_intro": {
        "en": "Thank you for joining us! Would you take a few minutes to share your thoughts?",
        "pt": "Obrigado por se juntar a nós! Pode partilhar a sua opinião em poucos minutos?",
        "ru": "Спасибо, что были с нами! Поделитесь, пожалуйста, своими впечатлениями.",
    },
    "review_cta": {
        "en": "Leave your review",
        "pt": "Deixe a sua avaliação",
        "ru": "Оставить отзыв",
    },
    # ---- Shared labels ----
    "greeting": {
        "en": "Hello {name},",
        "pt": "Olá {name},",
        "ru": "Здравствуйте, {name}!",
    },
    "label_reference": {"en": "Booking reference", "pt": "Referência da reserva", "ru": "Номер бронирования"},
    "label_tour": {"en": "Tour", "pt": "Tour", "ru": "Тур"},
    "label_date": {"en": "Date", "pt": "Data", "ru": "Дата"},
    "label_time": {"en": "Time", "pt": "Hora", "ru": "Время"},
    "label_participants": {"en": "Participants", "pt": "Participantes", "ru": "Участники"},
    "label_total": {"en": "Total", "pt": "Total", "ru": "Итого"},
    "label_discount": {"en": "Discount", "pt": "Desconto", "ru": "Скидка"},
    "label_meeting_point": {"en": "Meeting point", "pt": "Ponto de encontro", "ru": "Место встречи"},
    "signature": {
        "en": "See you in Lisbon!\nThe Lisbonlovesme team",
        "pt": "Até breve em Lisboa!\nA equipa Lisbonlovesme",
        "ru": "До встречи в Лиссабоне!\nКоманда Lisbonlovesme",
    },
    # ---- Admin (always English) ----
    "admin_new_booking_subject": {
        "en": "New booking request {reference} - {tour}",
    },
}

"""
Internationalization (i18n) support.
Tours and articles store their text as {"en": ..., "pt": ..., "ru": ...};
customer emails are rendered in the booking language.
"""

from typing import Dict, Any, Optional, Union
from enum import Enum


class Language(str, Enum):
    """Supported languages."""
    EN = "en"
    PT = "pt"
    RU = "ru"


# Supported language codes set
SUPPORTED_LANGS = {lang.value for lang in Language}

MultilingualText = Dict[str, str]


def normalize_language(lang: Optional[str]) -> str:
    """Map a browser-style tag ("pt-PT", "ru_RU") onto a supported code."""
    if not lang:
        return "en"
    lang = lang.strip().lower()
    if lang.startswith("pt"):
        return "pt"
    if lang.startswith("ru"):
        return "ru"
    return "en"


def get_localized_text(text: Union[str, MultilingualText, None], lang: Optional[str] = None) -> str:
    """Pick the requested language, falling back to en, then pt, then ru."""
    if not text:
        return ""
    if isinstance(text, str):
        return text
    key = normalize_language(lang)
    return text.get(key) or text.get("en") or text.get("pt") or text.get("ru") or ""


def to_multilingual(value: Union[str, MultilingualText, None]) -> MultilingualText:
    """Coerce a plain string into the same text for every language."""
    if value is None:
        return {code: "" for code in sorted(SUPPORTED_LANGS)}
    if isinstance(value, str):
        return {code: value for code in sorted(SUPPORTED_LANGS)}
    result = {code: value.get(code) or "" for code in sorted(SUPPORTED_LANGS)}
    return result


def localize_fields(data: Dict[str, Any], fields, lang: Optional[str]) -> Dict[str, str]:
    """Localized copies of the multilingual fields of a serialized record."""
    return {field: get_localized_text(data.get(field), lang) for field in fields}


def get_supported_languages() -> list:
    """Get list of supported languages with metadata."""
    return [
        {"code": "en", "name": "English", "native_name": "English"},
        {"code": "pt", "name": "Portuguese", "native_name": "Português"},
        {"code": "ru", "name": "Russian", "native_name": "Русский"},
    ]

"""Locale negotiation and message lookup."""
from __future__ import annotations

from typing import List, Optional, Tuple

from fastapi import Request

from app.localization.translations import TRANSLATIONS

DEFAULT_LOCALE = "en"


def _parse_accept_language(header: str) -> List[Tuple[str, float]]:
    """Return ``(language, q)`` pairs ordered by weight, highest first."""
    parsed = []
    for position, part in enumerate(header.split(",")):
        tag, _, params = part.strip().partition(";")
        tag = tag.strip().lower()
        if not tag or tag == "*":
            continue
        weight = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                weight = float(params[2:])
            except ValueError:
                weight = 0.0
        if weight > 0:
            parsed.append((tag.split("-")[0], weight, position))
    parsed.sort(key=lambda item: (-item[1], item[2]))
    return [(language, weight) for language, weight, _ in parsed]


def get_locale_from_request(request: Optional[Request] = None, default: str = DEFAULT_LOCALE) -> str:
    """Best supported locale from the Accept-Language header, else ``default``."""
    if request is None:
        return default
    for language, _ in _parse_accept_language(request.headers.get("Accept-Language", "")):
        if language in TRANSLATIONS:
            return language
    return default


def get_translation(key: str, locale: str = DEFAULT_LOCALE, **kwargs) -> str:
    """Translated message for ``key``; unknown keys come back unchanged."""
    catalog = TRANSLATIONS.get(locale.lower()) or TRANSLATIONS[DEFAULT_LOCALE]
    message = catalog.get(key, TRANSLATIONS[DEFAULT_LOCALE].get(key, key))
    if kwargs:
        try:
            return message.format(**kwargs)
        except (KeyError, ValueError):
            return message
    return message

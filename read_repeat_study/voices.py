"""Voice locales: display names, search filtering and lookup."""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Locale:
    id: str          # opaque identifier handed back to the speech service
    language: str
    name: str
    country: str


def locale_from_edge(voice: dict) -> Locale:
    """Build a Locale from one entry of edge_tts.list_voices().

    "en-US-AriaNeural" / Locale "en-US" → ("en", "AriaNeural", "US")
    """
    short_name = voice["ShortName"]
    locale_tag = voice.get("Locale", "")
    language, _, country = locale_tag.partition("-")
    name = short_name[len(locale_tag) + 1:] if locale_tag and short_name.startswith(locale_tag) else short_name
    return Locale(id=short_name, language=language, name=name, country=country)


def display_name(locale: Locale) -> str:
    return f"{locale.language} - {locale.name} ({locale.country})"


def sort_locales(locales: list[Locale]) -> list[Locale]:
    return sorted(locales, key=display_name)


def filter_locales(locales: list[Locale], search: str) -> list[Locale]:
    """Case-insensitive search over language, name and country.

    An empty or whitespace-only search returns the full sorted list.
    """
    needle = (search or "").strip().lower()
    if not needle:
        return sort_locales(locales)
    matches = [
        loc for loc in locales
        if needle in loc.language.lower()
        or needle in loc.name.lower()
        or needle in loc.country.lower()
    ]
    return sort_locales(matches)


def resolve_locale(locales: list[Locale], locale_id: str) -> Locale | None:
    """Find the platform locale for a persisted identifier."""
    if not locale_id:
        return None
    for loc in locales:
        if loc.id == locale_id:
            return loc
    logger.warning("Saved voice %s is not offered by the speech service", locale_id)
    return None

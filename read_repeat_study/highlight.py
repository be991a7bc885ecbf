"""Per-phrase presentation derived from playback state.

Nothing here holds state. The view asks for the styles of the page it shows
whenever the controller reports a new snapshot and repaints only the phrases
whose style changed.
"""

from dataclasses import dataclass
from enum import Enum

from read_repeat_study.models import HighlightPhase, PlaybackSnapshot


class PhraseLook(Enum):
    NORMAL = "normal"
    ACTIVE = "active"
    READ = "read"


@dataclass(frozen=True)
class PhraseStyle:
    look: PhraseLook
    text_color: str
    background_color: str


TRANSPARENT = "#00000000"

PALETTES = {
    "light": {
        "normal_text": "#000000",
        "active_text": "#FFFFFF",
        "active_background": "#3F8CFF",
        "read_text": "#9E9E9E",
    },
    "dark": {
        "normal_text": "#E0E0E0",
        "active_text": "#121212",
        "active_background": "#FFD700",
        "read_text": "#555555",
    },
}


def palette_for(theme: str) -> dict:
    """Return the color palette for a theme name ("light" or "dark")."""
    try:
        return PALETTES[theme]
    except KeyError:
        raise ValueError(f"Unknown theme: {theme}") from None


def phrase_looks(snapshot: PlaybackSnapshot, page_index: int, phrase_count: int) -> list[PhraseLook]:
    """Which of active/read/normal each phrase of a page shows.

    Only the cursor phrase on the cursor page is ever marked; entering a new
    phrase returns every other phrase to normal, and a reset (phase NONE)
    clears the whole page.
    """
    looks = [PhraseLook.NORMAL] * phrase_count
    position = snapshot.position
    if page_index != position.page or not 0 <= position.phrase < phrase_count:
        return looks
    if snapshot.phase is HighlightPhase.ACTIVE:
        looks[position.phrase] = PhraseLook.ACTIVE
    elif snapshot.phase is HighlightPhase.READ:
        looks[position.phrase] = PhraseLook.READ
    return looks


def style_for(look: PhraseLook, theme: str = "light") -> PhraseStyle:
    palette = palette_for(theme)
    if look is PhraseLook.ACTIVE:
        return PhraseStyle(look, palette["active_text"], palette["active_background"])
    if look is PhraseLook.READ:
        return PhraseStyle(look, palette["read_text"], TRANSPARENT)
    return PhraseStyle(look, palette["normal_text"], TRANSPARENT)


def page_presentation(
    snapshot: PlaybackSnapshot,
    page_index: int,
    phrase_count: int,
    theme: str = "light",
) -> list[PhraseStyle]:
    """Theme-aware styles for every phrase on a page."""
    return [style_for(look, theme) for look in phrase_looks(snapshot, page_index, phrase_count)]


def changed_phrases(old: list[PhraseStyle], new: list[PhraseStyle]) -> list[int]:
    """Indices whose style differs between two presentations of a page.

    A length change (page content edited) marks every phrase of the new page.
    """
    if len(old) != len(new):
        return list(range(len(new)))
    return [i for i, (before, after) in enumerate(zip(old, new)) if before != after]

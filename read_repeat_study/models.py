"""Data models for documents, flags, pages and playback."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass
class Flag:
    name: str
    color: str
    id: int | None = None   # assigned by storage on first save


@dataclass
class Document:
    name: str
    content: str = ""
    imported_date: datetime = field(default_factory=datetime.now)
    file_path: str = ""
    flag_id: int | None = None
    voice_locale: str = ""              # opaque locale id, "" = not chosen
    last_page_index: int | None = None
    id: int | None = None               # None until first saved

    @property
    def is_saved(self) -> bool:
        return self.id is not None


@dataclass
class Page:
    index: int
    text: str
    phrases: list[str]


@dataclass(frozen=True)
class PlaybackPosition:
    page: int = 0
    phrase: int = 0


class PlaybackState(Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    COMPLETED = "completed"


class HighlightPhase(Enum):
    NONE = "none"           # nothing highlighted on the cursor page
    ACTIVE = "active"       # cursor phrase is being spoken
    READ = "read"           # cursor phrase finished speaking


# Where the next play() starts when the caller gives no explicit position.

@dataclass(frozen=True)
class Paused:
    position: PlaybackPosition


@dataclass(frozen=True)
class UserSelected:
    position: PlaybackPosition


@dataclass(frozen=True)
class ReplayFromLastCompleted:
    position: PlaybackPosition


@dataclass(frozen=True)
class FromCursor:
    pass


ResumeIntent = Paused | UserSelected | ReplayFromLastCompleted | FromCursor


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Everything the view needs to derive per-phrase presentation."""
    state: PlaybackState = PlaybackState.IDLE
    position: PlaybackPosition = PlaybackPosition()
    phase: HighlightPhase = HighlightPhase.NONE

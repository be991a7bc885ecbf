"""A reading session: one document wired to pagination, playback and position saving."""

import logging

from read_repeat_study.config import DEFAULTS
from read_repeat_study.models import Document, PlaybackPosition
from read_repeat_study.persistence import PositionBridge
from read_repeat_study.playback import PlaybackController
from read_repeat_study.segmenter import build_pages

logger = logging.getLogger(__name__)


class ReaderSession:
    def __init__(self, storage, speech, document: Document, settings: dict | None = None, on_change=None):
        self.storage = storage
        self.document = document
        self.settings = dict(DEFAULTS, **(settings or {}))
        self.bridge = PositionBridge(storage, document)
        self.controller = PlaybackController(
            speech,
            voice_locale=document.voice_locale,
            pitch=self.settings["pitch"],
            volume=self.settings["volume"],
            repeat_delay=self.settings["repeat_delay_ms"] / 1000,
            on_change=on_change,
            on_page_changed=self.bridge.on_page_changed,
        )
        self._load_content()

    @classmethod
    def new(cls, storage, speech, name: str = "Untitled", content: str = "", **kwargs) -> "ReaderSession":
        """Session over an unsaved document; its page is not persisted until save()."""
        return cls(storage, speech, Document(name=name, content=content), **kwargs)

    @property
    def pages(self):
        return self.controller.pages

    def _load_content(self, page_index: int | None = None) -> None:
        pages = build_pages(self.document.content)
        if page_index is None:
            page_index = self.bridge.restore(len(pages))
        if not 0 <= page_index < len(pages):
            page_index = len(pages) - 1
        with self.bridge.restoring():
            self.controller.load_pages(pages, PlaybackPosition(page_index, 0))

    def edit_content(self, content: str) -> None:
        """Replace the text, re-paginate and abandon any playback.

        The cursor stays on its page when that page still exists, otherwise
        it moves to the last page.
        """
        self.document.content = content
        self._load_content(self.controller.position.page)

    def set_voice(self, locale_id: str) -> None:
        self.document.voice_locale = locale_id
        self.controller.voice_locale = locale_id
        if self.document.is_saved:
            self.storage.save_document(self.document)

    def save(self) -> Document:
        """Save the document, including the current page."""
        self.document.last_page_index = self.controller.position.page
        self.storage.save_document(self.document)
        self.bridge.mark_persisted(self.document.last_page_index)
        logger.debug("Saved document %s (%r)", self.document.id, self.document.name)
        return self.document

    def presentation(self, page_index: int | None = None):
        return self.controller.presentation(page_index, theme=self.settings["theme"])

    async def close(self) -> None:
        """Abandon playback and wait for pending position writes."""
        self.controller.stop()
        await self.bridge.flush()

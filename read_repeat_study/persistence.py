"""Remember the page a document was last read on."""

import asyncio
import logging
from contextlib import contextmanager

from read_repeat_study.models import Document

logger = logging.getLogger(__name__)


class PositionBridge:
    """Writes a document's last page index to storage when the page changes.

    Writes are skipped while restoring, for unsaved documents, and when the
    index equals the last value handed to storage. Inside an event loop they
    run in a worker thread, one at a time, in the order they were requested.
    """

    def __init__(self, storage, document: Document):
        self.storage = storage
        self.document = document
        self._last_persisted = document.last_page_index
        self._restoring = False
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    def restore(self, page_count: int) -> int:
        """Initial page for a freshly paginated document."""
        index = self.document.last_page_index
        if index is not None and 0 <= index < page_count:
            return index
        return 0

    @contextmanager
    def restoring(self):
        """Suppress writes while the cursor is being initialized."""
        self._restoring = True
        try:
            yield self
        finally:
            self._restoring = False

    def mark_persisted(self, page_index: int | None) -> None:
        """Record a value that reached storage by another route (document save)."""
        self._last_persisted = page_index

    def on_page_changed(self, new_page_index: int) -> None:
        if self._restoring or not self.document.is_saved:
            return
        if new_page_index == self._last_persisted:
            return

        previous = self._last_persisted
        self._last_persisted = new_page_index
        self.document.last_page_index = new_page_index

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if not self._write(new_page_index):
                self._forget(new_page_index, previous)
            return

        task = loop.create_task(self._write_in_background(new_page_index, previous))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for every write requested so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def _write_in_background(self, page_index: int, previous: int | None) -> None:
        async with self._lock:
            ok = await asyncio.to_thread(self._write, page_index)
        if not ok:
            self._forget(page_index, previous)

    def _forget(self, page_index: int, previous: int | None) -> None:
        """Roll back a page index that never reached storage."""
        if self._last_persisted == page_index:
            self._last_persisted = previous
        if self.document.last_page_index == page_index:
            self.document.last_page_index = previous

    def _write(self, page_index: int) -> bool:
        try:
            self.storage.set_last_page_index(self.document.id, page_index)
        except Exception as e:
            logger.warning(
                "Could not save reading position of %r (page %d): %s",
                self.document.name, page_index + 1, e,
            )
            return False
        logger.debug("Saved reading position of %r: page %d", self.document.name, page_index + 1)
        return True

"""Sequential, cancellable phrase-by-phrase playback over a paginated document."""

import asyncio
import logging

from read_repeat_study.constants import DEFAULT_PITCH, DEFAULT_VOLUME, REPEAT_DELAY_MS
from read_repeat_study.highlight import PhraseStyle, page_presentation
from read_repeat_study.models import (
    FromCursor,
    HighlightPhase,
    Page,
    Paused,
    PlaybackPosition,
    PlaybackSnapshot,
    PlaybackState,
    ReplayFromLastCompleted,
    UserSelected,
)
from read_repeat_study.segmenter import build_pages
from read_repeat_study.speech import CancellationToken, SpeechCancelledError, SpeechOptions

logger = logging.getLogger(__name__)


class VoiceNotSelectedError(Exception):
    """play() was requested before a voice locale was chosen."""


class PlaybackActiveError(Exception):
    """Navigation was requested while a play run is speaking."""


class PageOutOfRangeError(ValueError):
    """A page or phrase index outside the current document."""


class PlaybackController:
    """Drives speech over the phrases of a document, one phrase at a time.

    States: Idle, Playing, Paused, Completed. A play run speaks phrases in
    ascending (page, phrase) order from its start position to the end of the
    document. Every run owns a fresh CancellationToken; pause(), stop() or a
    newer play() cancel it, and at most one synthesis call is in flight.

    Listeners:
      on_change(snapshot)      state, cursor or highlight phase changed
      on_page_changed(index)   the cursor moved to another page
    """

    def __init__(
        self,
        speech,
        pages: list[Page] | None = None,
        voice_locale: str = "",
        pitch: float = DEFAULT_PITCH,
        volume: float = DEFAULT_VOLUME,
        repeat_delay: float = REPEAT_DELAY_MS / 1000,
        on_change=None,
        on_page_changed=None,
    ):
        self.speech = speech
        self.pages = pages or build_pages("")
        self.voice_locale = voice_locale
        self.pitch = pitch
        self.volume = volume
        self.repeat = False
        self.repeat_delay = repeat_delay
        self.on_change = on_change
        self.on_page_changed = on_page_changed

        self.state = PlaybackState.IDLE
        self.position = PlaybackPosition()
        self.phase = HighlightPhase.NONE
        self.resume_intent = FromCursor()
        self._token: CancellationToken | None = None
        self._inflight: asyncio.Future | None = None

    # --- read-only views ---

    @property
    def snapshot(self) -> PlaybackSnapshot:
        return PlaybackSnapshot(state=self.state, position=self.position, phase=self.phase)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def current_page(self) -> Page:
        return self.pages[self.position.page]

    def presentation(self, page_index: int | None = None, theme: str = "light") -> list[PhraseStyle]:
        """Styles for every phrase of a page (default: the cursor page)."""
        if page_index is None:
            page_index = self.position.page
        page = self.pages[page_index]
        return page_presentation(self.snapshot, page_index, len(page.phrases), theme)

    # --- content ---

    def load_pages(self, pages: list[Page], position: PlaybackPosition = PlaybackPosition()) -> None:
        """Replace the document pages (initial load or edit).

        Abandons any playback. The cursor is set directly, without a page
        change notification; out-of-range positions fall back to (0, 0).
        """
        self.stop()
        self.pages = pages or build_pages("")
        if not self._in_bounds(position):
            position = PlaybackPosition()
        self.position = position
        self.phase = HighlightPhase.NONE
        self.resume_intent = FromCursor()
        self._emit()

    # --- playback ---

    async def play(self, from_page: int | None = None, from_phrase: int | None = None) -> None:
        """Speak from the resolved start position to the end of the document.

        Returns when the run completes, is paused, or is superseded. With
        repeat enabled, a completed run restarts at (0, 0) after the repeat
        delay until cancelled or repeat is turned off.
        """
        if not self.voice_locale:
            raise VoiceNotSelectedError("Select a voice before playing.")
        if not any(phrase for page in self.pages for phrase in page.phrases):
            logger.info("Nothing to read: document is empty")
            return
        start = self._resolve_start(from_page, from_phrase)

        # Claim the timeline before awaiting, so a later play() cancels this one
        token = CancellationToken()
        if self._token is not None:
            self._token.cancel()
        self._token = token

        try:
            await self._wait_for_inflight()
            if self._token is not token or token.cancelled:
                return
            self._set_state(PlaybackState.PLAYING)
            while True:
                if not await self._run_pass(start, token):
                    return
                self.resume_intent = ReplayFromLastCompleted(self.position)
                self._set_state(PlaybackState.COMPLETED)
                if not self.repeat:
                    return
                if not await token.sleep(self.repeat_delay):
                    return
                if not self.repeat or self._token is not token or self.state is not PlaybackState.COMPLETED:
                    return
                start = PlaybackPosition(0, 0)
                self._set_state(PlaybackState.PLAYING)
        except SpeechCancelledError:
            self._handle_cancel(token)
        except Exception:
            if self._token is token:
                self._reset()
            raise
        finally:
            if self._token is token:
                self._token = None

    def pause(self) -> None:
        """Cancel the in-flight phrase and remember it as the resume point.

        During the delay before a repeat pass, cancels the restart and keeps
        the final phrase as the resume point.
        """
        if self._cancel_pending_repeat():
            self.resume_intent = Paused(self.position)
            self._set_state(PlaybackState.PAUSED)
            return
        if self.state is not PlaybackState.PLAYING:
            return
        if self._token is not None:
            self._token.cancel()
        self.resume_intent = Paused(self.position)
        self._set_state(PlaybackState.PAUSED)

    def stop(self) -> None:
        """Abandon playback: cancel, return to Idle and clear highlights."""
        if self._token is not None:
            self._token.cancel()
            self._token = None
        if self.state is PlaybackState.IDLE and self.phase is HighlightPhase.NONE:
            return
        self._reset()

    def toggle_repeat(self) -> bool:
        self.repeat = not self.repeat
        return self.repeat

    # --- navigation ---

    def jump_to_page(self, page_number: int) -> None:
        """Move the cursor to a 1-based page without starting playback."""
        if self.state is PlaybackState.PLAYING:
            raise PlaybackActiveError("Pause playback before changing page.")
        if not 1 <= page_number <= self.page_count:
            raise PageOutOfRangeError(
                f"Page {page_number} is out of range (1-{self.page_count})"
            )
        self._cancel_pending_repeat()
        self._move_to(PlaybackPosition(page_number - 1, 0))
        self.resume_intent = FromCursor()
        self.state = PlaybackState.IDLE
        self.phase = HighlightPhase.NONE
        self._emit()

    def next_page(self) -> bool:
        if self.position.page + 1 >= self.page_count:
            return False
        self.jump_to_page(self.position.page + 2)
        return True

    def previous_page(self) -> bool:
        if self.position.page == 0:
            return False
        self.jump_to_page(self.position.page)
        return True

    def select_phrase(self, page: int, phrase: int) -> None:
        """Make (page, phrase) the start of the next play(), once."""
        position = PlaybackPosition(page, phrase)
        if not self._in_bounds(position):
            raise PageOutOfRangeError(f"No phrase {phrase} on page {page}")
        self._cancel_pending_repeat()
        self.resume_intent = UserSelected(position)

    # --- internals ---

    def _resolve_start(self, from_page: int | None, from_phrase: int | None) -> PlaybackPosition:
        if from_page is not None or from_phrase is not None:
            page = self.position.page if from_page is None else from_page
            position = PlaybackPosition(page, from_phrase or 0)
            if not self._in_bounds(position):
                raise PageOutOfRangeError(f"No phrase {position.phrase} on page {position.page}")
            self.resume_intent = FromCursor()
            return position

        intent = self.resume_intent
        self.resume_intent = FromCursor()
        if isinstance(intent, UserSelected):
            return intent.position
        if isinstance(intent, Paused) and self.state is PlaybackState.PAUSED:
            return intent.position
        if isinstance(intent, ReplayFromLastCompleted):
            return intent.position
        return self.position

    async def _run_pass(self, start: PlaybackPosition, token: CancellationToken) -> bool:
        """Speak from start to the last phrase. False if cancelled on the way."""
        for page_index in range(start.page, self.page_count):
            phrases = self.pages[page_index].phrases
            first = start.phrase if page_index == start.page else 0
            for phrase_index in range(first, len(phrases)):
                self._move_to(PlaybackPosition(page_index, phrase_index))
                self._set_phase(HighlightPhase.ACTIVE)
                try:
                    await self._speak(phrases[phrase_index], token)
                except SpeechCancelledError:
                    self._handle_cancel(token)
                    return False
                if token.cancelled:
                    self._handle_cancel(token)
                    return False
                self._set_phase(HighlightPhase.READ)
        return True

    async def _speak(self, text: str, token: CancellationToken) -> None:
        options = SpeechOptions(locale=self.voice_locale, pitch=self.pitch, volume=self.volume)
        task = asyncio.ensure_future(self.speech.speak(text, options, token))
        self._inflight = task
        try:
            await task
        finally:
            if self._inflight is task:
                self._inflight = None

    async def _wait_for_inflight(self) -> None:
        """Wait until the previous run's synthesis call has ended."""
        while self._inflight is not None and not self._inflight.done():
            await asyncio.wait({self._inflight})

    def _cancel_pending_repeat(self) -> bool:
        """Cancel a run that is waiting out the repeat delay."""
        if self.state is not PlaybackState.COMPLETED or self._token is None:
            return False
        self._token.cancel()
        self._token = None
        return True

    def _handle_cancel(self, token: CancellationToken) -> None:
        if self._token is not token:
            return  # superseded by a newer run, which owns the state now
        if self.state is PlaybackState.PAUSED:
            return
        self._reset()

    def _reset(self) -> None:
        self.state = PlaybackState.IDLE
        self.phase = HighlightPhase.NONE
        self.resume_intent = FromCursor()
        self._emit()

    def _in_bounds(self, position: PlaybackPosition) -> bool:
        if not 0 <= position.page < self.page_count:
            return False
        return 0 <= position.phrase < len(self.pages[position.page].phrases)

    def _move_to(self, position: PlaybackPosition) -> None:
        previous_page = self.position.page
        self.position = position
        if position.page != previous_page and self.on_page_changed is not None:
            self.on_page_changed(position.page)

    def _set_state(self, state: PlaybackState) -> None:
        self.state = state
        self._emit()

    def _set_phase(self, phase: HighlightPhase) -> None:
        self.phase = phase
        self._emit()

    def _emit(self) -> None:
        if self.on_change is not None:
            self.on_change(self.snapshot)

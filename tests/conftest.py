"""Shared fixtures for read_repeat_study tests."""

import asyncio

import pytest

from read_repeat_study.models import HighlightPhase, PlaybackState
from read_repeat_study.segmenter import build_pages
from read_repeat_study.speech import SpeechError
from read_repeat_study.storage import Storage


class FakeSpeech:
    """Speech service that records phrases instead of speaking them.

    Phrases listed in block_on wait for the token to be cancelled (once
    each); phrases in fail_on raise SpeechError.
    """

    def __init__(self, block_on=(), fail_on=()):
        self.spoken = []
        self.options = []
        self.block_on = set(block_on)
        self.fail_on = set(fail_on)
        self.blocked = asyncio.Event()
        self.on_speak = None
        self.inflight = 0
        self.max_inflight = 0

    async def speak(self, text, options, token):
        self.inflight += 1
        self.max_inflight = max(self.max_inflight, self.inflight)
        try:
            self.spoken.append(text)
            self.options.append(options)
            if self.on_speak is not None:
                self.on_speak(text)
            if text in self.fail_on:
                raise SpeechError(f"cannot say {text}")
            if text in self.block_on:
                self.block_on.discard(text)
                self.blocked.set()
                await token.wait()
            await asyncio.sleep(0)
            token.raise_if_cancelled()
        finally:
            self.inflight -= 1


class MemoryStorage:
    """Storage double that counts position writes."""

    def __init__(self, fail=False):
        self.writes = []
        self.saved = []
        self.fail = fail

    def set_last_page_index(self, document_id, page_index):
        if self.fail:
            raise OSError("disk full")
        self.writes.append((document_id, page_index))

    def save_document(self, document):
        if document.id is None:
            document.id = len(self.saved) + 1
        self.saved.append(document)
        return document


class Recorder:
    """on_change listener keeping every snapshot."""

    def __init__(self):
        self.snapshots = []

    def __call__(self, snapshot):
        self.snapshots.append(snapshot)

    def active_positions(self):
        return [
            (s.position.page, s.position.phrase)
            for s in self.snapshots
            if s.phase is HighlightPhase.ACTIVE and s.state is PlaybackState.PLAYING
        ]

    def states(self):
        return [s.state for s in self.snapshots]


TWO_PAGE_TEXT = "One. Two. Three.\n\nFour. Five."


@pytest.fixture
def fake_speech():
    return FakeSpeech()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def storage(tmp_path):
    return Storage(str(tmp_path / "library"))


@pytest.fixture
def two_pages():
    """Pages of 3 and 2 phrases."""
    return build_pages(TWO_PAGE_TEXT)


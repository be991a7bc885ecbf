"""Tests for playback module (PlaybackController state machine)."""

import asyncio

import pytest

from read_repeat_study.models import (
    FromCursor,
    HighlightPhase,
    Paused,
    PlaybackPosition,
    PlaybackState,
    ReplayFromLastCompleted,
    UserSelected,
)
from read_repeat_study.playback import (
    PageOutOfRangeError,
    PlaybackActiveError,
    PlaybackController,
    VoiceNotSelectedError,
)
from read_repeat_study.segmenter import build_pages
from read_repeat_study.speech import SpeechError

VOICE = "en-US-AriaNeural"
ALL_PHRASES = ["One.", "Two.", "Three.", "Four.", "Five."]


def _controller(speech, pages, **kwargs):
    kwargs.setdefault("voice_locale", VOICE)
    return PlaybackController(speech, pages, **kwargs)


def _pause_on(controller, speech, phrase):
    """Run play() until `phrase` is being spoken, then pause."""
    speech.block_on.add(phrase)

    async def scenario():
        run = asyncio.create_task(controller.play())
        await speech.blocked.wait()
        controller.pause()
        await run

    asyncio.run(scenario())


# --- full pass ---


def test_play_speaks_every_phrase_in_order(fake_speech, two_pages, recorder):
    """Pages of 3 and 2 phrases are spoken (0,0)..(1,1) then Completed."""
    ctl = _controller(fake_speech, two_pages, on_change=recorder)
    asyncio.run(ctl.play())

    assert fake_speech.spoken == ALL_PHRASES
    assert recorder.active_positions() == [(0, 0), (0, 1), (0, 2), (1, 0), (1, 1)]
    assert ctl.state is PlaybackState.COMPLETED
    assert ctl.position == PlaybackPosition(1, 1)
    assert ctl.phase is HighlightPhase.READ


def test_play_passes_voice_pitch_and_volume(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages, pitch=1.4, volume=0.5)
    asyncio.run(ctl.play())
    options = fake_speech.options[0]
    assert options.locale == VOICE
    assert options.pitch == 1.4
    assert options.volume == 0.5


def test_page_change_notified_once_per_new_page(fake_speech, two_pages):
    changes = []
    ctl = _controller(fake_speech, two_pages, on_page_changed=changes.append)
    asyncio.run(ctl.play())
    assert changes == [1]


def test_each_phrase_goes_active_then_read(fake_speech, two_pages, recorder):
    ctl = _controller(fake_speech, two_pages, on_change=recorder)
    asyncio.run(ctl.play())
    phases = [
        (s.position, s.phase) for s in recorder.snapshots
        if s.phase is not HighlightPhase.NONE and s.state is PlaybackState.PLAYING
    ]
    assert phases[:2] == [
        (PlaybackPosition(0, 0), HighlightPhase.ACTIVE),
        (PlaybackPosition(0, 0), HighlightPhase.READ),
    ]


def test_play_from_explicit_position(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    asyncio.run(ctl.play(from_page=1))
    assert fake_speech.spoken == ["Four.", "Five."]


def test_play_from_explicit_position_out_of_range(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    with pytest.raises(PageOutOfRangeError):
        asyncio.run(ctl.play(from_page=0, from_phrase=7))
    assert fake_speech.spoken == []


def test_play_without_voice_raises(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages, voice_locale="")
    with pytest.raises(VoiceNotSelectedError):
        asyncio.run(ctl.play())
    assert fake_speech.spoken == []
    assert ctl.state is PlaybackState.IDLE


def test_play_empty_document_is_a_no_op(fake_speech):
    ctl = _controller(fake_speech, build_pages("   "))
    asyncio.run(ctl.play())
    assert fake_speech.spoken == []
    assert ctl.state is PlaybackState.IDLE


def test_play_on_empty_document_keeps_selected_phrase(fake_speech):
    ctl = _controller(fake_speech, build_pages(""))
    ctl.select_phrase(0, 0)
    asyncio.run(ctl.play())
    assert ctl.resume_intent == UserSelected(PlaybackPosition(0, 0))


def test_play_after_completion_replays_last_phrase(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    asyncio.run(ctl.play())
    assert ctl.resume_intent == ReplayFromLastCompleted(PlaybackPosition(1, 1))

    fake_speech.spoken.clear()
    asyncio.run(ctl.play())
    assert fake_speech.spoken == ["Five."]


# --- pause / resume ---


def test_pause_keeps_position_and_highlight(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    _pause_on(ctl, fake_speech, "Two.")

    assert ctl.state is PlaybackState.PAUSED
    assert ctl.position == PlaybackPosition(0, 1)
    assert ctl.phase is HighlightPhase.ACTIVE
    assert fake_speech.spoken == ["One.", "Two."]


def test_resume_after_pause_starts_at_paused_phrase(fake_speech, two_pages):
    """The interrupted phrase is spoken again from its start."""
    ctl = _controller(fake_speech, two_pages)
    _pause_on(ctl, fake_speech, "Two.")

    asyncio.run(ctl.play())
    assert fake_speech.spoken == ["One.", "Two.", "Two.", "Three.", "Four.", "Five."]
    assert ctl.state is PlaybackState.COMPLETED


def test_pause_when_not_playing_is_ignored(fake_speech, two_pages, recorder):
    ctl = _controller(fake_speech, two_pages, on_change=recorder)
    ctl.pause()
    assert ctl.state is PlaybackState.IDLE
    assert ctl.resume_intent == FromCursor()
    assert recorder.snapshots == []


def test_selected_phrase_overrides_paused_position(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    _pause_on(ctl, fake_speech, "Two.")
    ctl.select_phrase(1, 0)
    assert ctl.resume_intent == UserSelected(PlaybackPosition(1, 0))

    fake_speech.spoken.clear()
    asyncio.run(ctl.play())
    assert fake_speech.spoken == ["Four.", "Five."]


def test_selected_phrase_is_consumed_by_one_play(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    ctl.select_phrase(0, 2)
    asyncio.run(ctl.play())
    assert fake_speech.spoken == ["Three.", "Four.", "Five."]
    assert not isinstance(ctl.resume_intent, UserSelected)


def test_select_phrase_out_of_range(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    with pytest.raises(PageOutOfRangeError):
        ctl.select_phrase(1, 2)
    with pytest.raises(PageOutOfRangeError):
        ctl.select_phrase(2, 0)


# --- stop / errors ---


def test_stop_cancels_and_resets(fake_speech, two_pages):
    fake_speech.block_on.add("Two.")
    ctl = _controller(fake_speech, two_pages)

    async def scenario():
        run = asyncio.create_task(ctl.play())
        await fake_speech.blocked.wait()
        ctl.stop()
        await run

    asyncio.run(scenario())
    assert ctl.state is PlaybackState.IDLE
    assert ctl.phase is HighlightPhase.NONE
    assert ctl.resume_intent == FromCursor()
    assert fake_speech.spoken == ["One.", "Two."]


def test_speech_error_resets_and_propagates(fake_speech, two_pages):
    fake_speech.fail_on.add("Two.")
    ctl = _controller(fake_speech, two_pages)
    with pytest.raises(SpeechError):
        asyncio.run(ctl.play())
    assert ctl.state is PlaybackState.IDLE
    assert ctl.phase is HighlightPhase.NONE


# --- concurrency ---


def test_new_play_supersedes_running_one(fake_speech, two_pages):
    """The older run is cancelled before the newer one speaks."""
    fake_speech.block_on.add("Two.")
    ctl = _controller(fake_speech, two_pages)

    async def scenario():
        first = asyncio.create_task(ctl.play())
        await fake_speech.blocked.wait()
        await ctl.play(from_page=1)
        await first

    asyncio.run(scenario())
    assert fake_speech.spoken == ["One.", "Two.", "Four.", "Five."]
    assert fake_speech.max_inflight == 1
    assert ctl.state is PlaybackState.COMPLETED


def test_never_more_than_one_phrase_in_flight(fake_speech, two_pages):
    fake_speech.block_on.update({"Two.", "Four."})
    ctl = _controller(fake_speech, two_pages)

    async def scenario():
        first = asyncio.create_task(ctl.play())
        await fake_speech.blocked.wait()
        fake_speech.blocked.clear()
        second = asyncio.create_task(ctl.play(from_page=1))
        await fake_speech.blocked.wait()
        ctl.pause()
        await asyncio.gather(first, second)

    asyncio.run(scenario())
    assert fake_speech.max_inflight == 1
    assert ctl.state is PlaybackState.PAUSED
    assert ctl.position == PlaybackPosition(1, 0)


def test_racing_plays_only_the_latest_speaks(fake_speech, two_pages):
    """Two play() calls made while a phrase is speaking: the last one wins."""
    fake_speech.block_on.add("Two.")
    ctl = _controller(fake_speech, two_pages)

    async def scenario():
        first = asyncio.create_task(ctl.play())
        await fake_speech.blocked.wait()
        second = asyncio.create_task(ctl.play(from_page=1))
        third = asyncio.create_task(ctl.play(from_page=0, from_phrase=2))
        await asyncio.gather(first, second, third)

    asyncio.run(scenario())
    assert fake_speech.spoken == ["One.", "Two.", "Three.", "Four.", "Five."]
    assert fake_speech.max_inflight == 1
    assert ctl.state is PlaybackState.COMPLETED


def test_pause_while_new_play_waits_for_old_phrase(fake_speech, two_pages):
    fake_speech.block_on.add("Two.")
    ctl = _controller(fake_speech, two_pages)

    async def scenario():
        first = asyncio.create_task(ctl.play())
        await fake_speech.blocked.wait()
        second = asyncio.create_task(ctl.play(from_page=1))
        await asyncio.sleep(0)
        ctl.pause()
        await asyncio.gather(first, second)

    asyncio.run(scenario())
    assert fake_speech.spoken == ["One.", "Two."]
    assert ctl.state is PlaybackState.PAUSED


# --- repeat ---


def test_repeat_restarts_from_first_phrase(fake_speech, two_pages, recorder):
    ctl = _controller(fake_speech, two_pages, repeat_delay=0.01, on_change=recorder)
    assert ctl.toggle_repeat() is True

    def turn_off_in_second_pass(text):
        if len(fake_speech.spoken) == len(ALL_PHRASES) + 1:
            ctl.toggle_repeat()

    fake_speech.on_speak = turn_off_in_second_pass
    asyncio.run(ctl.play())

    assert fake_speech.spoken == ALL_PHRASES * 2
    assert recorder.states().count(PlaybackState.COMPLETED) == 2
    assert ctl.state is PlaybackState.COMPLETED


def test_stop_during_repeat_delay(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages, repeat_delay=30)
    ctl.toggle_repeat()

    def stop_when_completed(snapshot):
        if snapshot.state is PlaybackState.COMPLETED:
            asyncio.get_running_loop().call_soon(ctl.stop)

    ctl.on_change = stop_when_completed
    asyncio.run(asyncio.wait_for(ctl.play(), timeout=5))

    assert fake_speech.spoken == ALL_PHRASES
    assert ctl.state is PlaybackState.IDLE


def _repeat_once_then(ctl, action, *args):
    """Run a repeating play(), calling action(*args) as the first pass completes."""
    ctl.toggle_repeat()

    def on_change(snapshot):
        if snapshot.state is PlaybackState.COMPLETED:
            ctl.on_change = None
            asyncio.get_running_loop().call_soon(action, *args)

    ctl.on_change = on_change
    asyncio.run(asyncio.wait_for(ctl.play(), timeout=5))


def test_pause_during_repeat_delay_stops_the_restart(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages, repeat_delay=30)
    _repeat_once_then(ctl, ctl.pause)

    assert fake_speech.spoken == ALL_PHRASES
    assert ctl.state is PlaybackState.PAUSED
    assert ctl.resume_intent == Paused(PlaybackPosition(1, 1))


def test_jump_during_repeat_delay_wins_over_restart(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages, repeat_delay=30)
    _repeat_once_then(ctl, ctl.previous_page)

    assert fake_speech.spoken == ALL_PHRASES
    assert ctl.state is PlaybackState.IDLE
    assert ctl.position == PlaybackPosition(0, 0)


def test_selected_phrase_during_repeat_delay_is_kept(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages, repeat_delay=30)
    _repeat_once_then(ctl, ctl.select_phrase, 0, 2)

    assert fake_speech.spoken == ALL_PHRASES
    assert ctl.resume_intent == UserSelected(PlaybackPosition(0, 2))

    ctl.toggle_repeat()
    fake_speech.spoken.clear()
    asyncio.run(ctl.play())
    assert fake_speech.spoken == ["Three.", "Four.", "Five."]


# --- navigation ---


def test_jump_to_page_moves_cursor(fake_speech, two_pages, recorder):
    changes = []
    ctl = _controller(fake_speech, two_pages, on_change=recorder, on_page_changed=changes.append)
    ctl.jump_to_page(2)

    assert ctl.position == PlaybackPosition(1, 0)
    assert ctl.state is PlaybackState.IDLE
    assert changes == [1]
    assert recorder.snapshots[-1].position == PlaybackPosition(1, 0)
    assert fake_speech.spoken == []


def test_jump_to_page_out_of_range(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    for page_number in (0, 3, -1):
        with pytest.raises(PageOutOfRangeError):
            ctl.jump_to_page(page_number)
    assert ctl.position == PlaybackPosition(0, 0)


def test_jump_while_playing_is_rejected(fake_speech, two_pages):
    fake_speech.block_on.add("One.")
    ctl = _controller(fake_speech, two_pages)
    errors = []

    async def scenario():
        run = asyncio.create_task(ctl.play())
        await fake_speech.blocked.wait()
        try:
            ctl.jump_to_page(2)
        except PlaybackActiveError as e:
            errors.append(e)
        ctl.stop()
        await run

    asyncio.run(scenario())
    assert len(errors) == 1
    assert ctl.position == PlaybackPosition(0, 0)


def test_jump_after_pause_discards_paused_position(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    _pause_on(ctl, fake_speech, "Two.")
    ctl.jump_to_page(2)
    assert ctl.state is PlaybackState.IDLE
    assert ctl.phase is HighlightPhase.NONE

    fake_speech.spoken.clear()
    asyncio.run(ctl.play())
    assert fake_speech.spoken == ["Four.", "Five."]


def test_next_and_previous_page(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    assert ctl.previous_page() is False
    assert ctl.next_page() is True
    assert ctl.position.page == 1
    assert ctl.next_page() is False
    assert ctl.previous_page() is True
    assert ctl.position.page == 0


# --- content / presentation ---


def test_load_pages_resets_out_of_range_cursor(fake_speech, two_pages):
    changes = []
    ctl = _controller(fake_speech, two_pages, on_page_changed=changes.append)
    ctl.load_pages(build_pages("Only page."), PlaybackPosition(4, 0))
    assert ctl.position == PlaybackPosition(0, 0)
    assert ctl.page_count == 1
    assert changes == []


def test_presentation_follows_cursor(fake_speech, two_pages):
    ctl = _controller(fake_speech, two_pages)
    _pause_on(ctl, fake_speech, "Two.")
    looks = [style.look.value for style in ctl.presentation()]
    assert looks == ["normal", "active", "normal"]
    assert [style.look.value for style in ctl.presentation(1)] == ["normal", "normal"]

"""Speech synthesis via edge-tts with retry, volume gain and cancellable playback."""

import asyncio
import logging
import math
import os
import tempfile
from dataclasses import dataclass

import edge_tts
from pydub import AudioSegment

from read_repeat_study.constants import (
    DEFAULT_PITCH,
    DEFAULT_VOLUME,
    PITCH_HZ_PER_UNIT,
    PLAYER_COMMAND,
    TTS_RATE,
    TTS_RETRY_BASE_DELAY,
    TTS_RETRY_COUNT,
)
from read_repeat_study.voices import Locale, locale_from_edge

logger = logging.getLogger(__name__)


class SpeechCancelledError(Exception):
    """The cancellation token fired while a phrase was being spoken."""


class SpeechError(Exception):
    """Synthesis or playback failed for a reason other than cancellation."""


class CancellationToken:
    """One-shot cancellation signal shared by a play run and its speech calls."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SpeechCancelledError()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep unless cancelled first. Returns False if cancelled."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False


@dataclass
class SpeechOptions:
    locale: str
    pitch: float = DEFAULT_PITCH
    volume: float = DEFAULT_VOLUME


def pitch_to_edge(pitch: float) -> str:
    """1.0 → "+0Hz", 1.5 → "+25Hz", 0.5 → "-25Hz"."""
    return f"{round((pitch - 1.0) * PITCH_HZ_PER_UNIT):+d}Hz"


def volume_to_gain_db(volume: float) -> float:
    """Linear volume (0.0–1.0) to a pydub gain in dB."""
    if volume <= 0:
        return -120.0
    return 20 * math.log10(min(volume, 1.0))


async def until_cancelled(awaitable, token: CancellationToken):
    """Await `awaitable` unless the token fires first.

    On cancellation the pending work is cancelled and SpeechCancelledError
    is raised.
    """
    work = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        watcher.cancel()
    if work in done:
        return work.result()
    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    raise SpeechCancelledError()


def _prepare_audio(mp3_path: str, wav_path: str, volume: float) -> None:
    audio = AudioSegment.from_mp3(mp3_path)
    if volume != 1.0:
        audio = audio.apply_gain(volume_to_gain_db(volume))
    audio.export(wav_path, format="wav")


class EdgeSpeechService:
    """Speech service backed by edge-tts and an external audio player."""

    def __init__(self, rate: str = TTS_RATE, player_command: list[str] | None = None):
        self.rate = rate
        self.player_command = list(player_command or PLAYER_COMMAND)

    async def list_voices(self) -> list[Locale]:
        voices = await edge_tts.list_voices()
        return [locale_from_edge(v) for v in voices]

    async def synthesize(self, text: str, options: SpeechOptions, output_path: str) -> None:
        """Write one phrase as MP3, retrying with exponential backoff.

        Retries on network errors or 0-byte output files.
        """
        last_error = None
        for attempt in range(TTS_RETRY_COUNT):
            try:
                communicate = edge_tts.Communicate(
                    text, options.locale, rate=self.rate, pitch=pitch_to_edge(options.pitch)
                )
                await communicate.save(output_path)

                if os.path.exists(output_path) and os.path.getsize(output_path) > 0:
                    return

                last_error = SpeechError(f"TTS produced 0-byte file for: {text[:50]}...")
            except Exception as e:
                last_error = e

            logger.debug("Synthesis attempt %d failed: %s", attempt + 1, last_error)
            if attempt < TTS_RETRY_COUNT - 1:
                await asyncio.sleep(TTS_RETRY_BASE_DELAY * (2 ** attempt))

        raise SpeechError(f"Speech synthesis failed: {last_error}") from last_error

    async def speak(self, text: str, options: SpeechOptions, token: CancellationToken) -> None:
        """Synthesize and play one phrase; returns when playback finishes.

        Raises SpeechCancelledError as soon as the token is cancelled.
        """
        token.raise_if_cancelled()
        with tempfile.TemporaryDirectory(prefix="readrepeat_") as tmp:
            mp3_path = os.path.join(tmp, "phrase.mp3")
            wav_path = os.path.join(tmp, "phrase.wav")
            await until_cancelled(self.synthesize(text, options, mp3_path), token)
            await until_cancelled(
                asyncio.to_thread(_prepare_audio, mp3_path, wav_path, options.volume), token
            )
            await self._play(wav_path, token)

    async def _play(self, wav_path: str, token: CancellationToken) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.player_command, wav_path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise SpeechError(f"Audio player not found: {self.player_command[0]}") from e
        try:
            returncode = await until_cancelled(proc.wait(), token)
        finally:
            if proc.returncode is None:
                proc.terminate()
                await proc.wait()
        if returncode != 0:
            raise SpeechError(f"Audio player exited with status {returncode}")

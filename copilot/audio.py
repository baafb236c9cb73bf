"""Speech output for navigation callouts using the system TTS engine."""

import logging
import shutil
import subprocess
import threading
from dataclasses import dataclass
from queue import Empty, Queue
from typing import List, Optional, Protocol

from config import (
    TTS_VOICE,
    TTS_WORDS_PER_MINUTE,
    DEFAULT_NAVIGATION_VOLUME,
    SPEECH_NAV_RALLY_PITCH,
    SPEECH_NAV_RALLY_RATE,
    SPEECH_NAV_PITCH,
    SPEECH_NAV_RATE,
)

logger = logging.getLogger('timeattack.audio')


@dataclass(frozen=True)
class SpeechOptions:
    """Voice parameters; pitch and rate are multipliers around 1.0."""
    pitch: float = 1.0
    rate: float = 1.0
    volume: float = 1.0  # 0.0 - 1.0


class SpeechSink(Protocol):
    """Anything that can speak a message and cancel what it is saying."""

    def speak(self, message: str, options: SpeechOptions) -> None: ...

    def stop(self) -> None: ...


class AudioPlayer:
    """
    Speaks messages through espeak-ng/espeak (Linux) or say (macOS).

    Messages are queued and spoken one at a time on a background thread.
    stop() drops anything queued and kills the utterance in flight.
    """

    def __init__(self, voice: str = TTS_VOICE, words_per_minute: int = TTS_WORDS_PER_MINUTE):
        self.voice = voice
        self.words_per_minute = words_per_minute
        self._queue: Queue = Queue()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._process: Optional[subprocess.Popen] = None
        self._process_lock = threading.Lock()

        self._has_say = shutil.which("say") is not None
        self._espeak = shutil.which("espeak-ng") or shutil.which("espeak")

    @property
    def available(self) -> bool:
        return bool(self._espeak or self._has_say)

    def start(self) -> None:
        """Start the playback thread."""
        if self._running:
            return
        if not self.available:
            logger.warning("No TTS engine found (install espeak-ng), speech disabled")
        self._running = True
        self._thread = threading.Thread(target=self._playback_loop, daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        """Stop speaking and end the playback thread."""
        self._running = False
        self.stop()
        if self._thread:
            self._thread.join(timeout=1)

    def speak(self, message: str, options: SpeechOptions = SpeechOptions()) -> None:
        """Queue a message."""
        if message:
            self._queue.put((message, options))

    def stop(self) -> None:
        """Cancel queued and in-flight speech."""
        while True:
            try:
                self._queue.get_nowait()
            except Empty:
                break
        with self._process_lock:
            if self._process and self._process.poll() is None:
                self._process.terminate()

    def build_command(self, message: str, options: SpeechOptions) -> Optional[List[str]]:
        """Command line for the available TTS engine, None if there is none."""
        wpm = max(80, int(self.words_per_minute * options.rate))
        if self._espeak:
            pitch = max(0, min(99, int(50 * options.pitch)))
            amplitude = max(0, min(200, int(100 * options.volume)))
            return [self._espeak, "-v", self.voice, "-s", str(wpm),
                    "-p", str(pitch), "-a", str(amplitude), message]
        if self._has_say:
            return ["say", "-r", str(wpm), message]
        return None

    def _playback_loop(self) -> None:
        """Background thread that speaks queued messages in order."""
        while self._running:
            try:
                message, options = self._queue.get(timeout=0.1)
            except Empty:
                continue
            self._speak_now(message, options)

    def _speak_now(self, message: str, options: SpeechOptions) -> None:
        cmd = self.build_command(message, options)
        if cmd is None:
            logger.debug("Would say: %s", message)
            return
        try:
            with self._process_lock:
                self._process = subprocess.Popen(
                    cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
                process = self._process
            process.wait(timeout=30)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("TTS failed: %s", e)


class VoiceAnnouncer:
    """
    Gatekeeper between the pipeline and the speech sink.

    Applies the voice mode and volume settings, stops in-flight speech
    before every navigation callout, and suppresses a navigation
    instruction whose dedup key matches the previous one.
    """

    def __init__(self, sink: SpeechSink, voice_mode: str = "normal",
                 volume: int = DEFAULT_NAVIGATION_VOLUME):
        self.sink = sink
        self.voice_mode = voice_mode
        self.volume = volume
        self.last_key: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self.voice_mode != "off" and self.volume > 0

    def options(self, pitch: float, rate: float) -> SpeechOptions:
        return SpeechOptions(pitch=pitch, rate=rate, volume=self.volume / 100.0)

    def reset_key(self):
        """Forget the last instruction so the next one is always spoken."""
        self.last_key = None

    def is_new(self, key: str) -> bool:
        return key != self.last_key

    def announce(self, message: str, pitch: float = 1.0, rate: float = 1.0) -> bool:
        """
        Speak a one-off message (start, finish, camera warnings).

        Returns:
            True if the message was handed to the sink
        """
        if not message or not self.enabled:
            return False
        try:
            self.sink.speak(message, self.options(pitch, rate))
        except Exception as e:
            logger.warning("Error speaking %r: %s", message, e)
            return False
        return True

    def announce_navigation(self, key: str, message: str) -> bool:
        """
        Speak a navigation callout unless its key was the last one spoken.

        The key is remembered even when voice is off, so switching voice on
        mid-run does not replay a stale instruction.
        """
        if not self.is_new(key):
            return False
        self.last_key = key
        if not message or not self.enabled:
            return False

        rally = self.voice_mode == "rally"
        try:
            self.sink.stop()
            self.sink.speak(message, self.options(
                SPEECH_NAV_RALLY_PITCH if rally else SPEECH_NAV_PITCH,
                SPEECH_NAV_RALLY_RATE if rally else SPEECH_NAV_RATE,
            ))
        except Exception as e:
            logger.warning("Error speaking navigation: %s", e)
            return False
        logger.debug("Navigation: %s", message)
        return True

    def stop(self):
        try:
            self.sink.stop()
        except Exception as e:
            logger.warning("Error stopping speech: %s", e)

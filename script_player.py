import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from config import DEFAULT_PACE_WPM, MIN_READ_SECONDS, PACE_WPM_RANGE, SPEECH_FALLBACK_SECONDS
from errors import InputValidation, SpeechUnavailable
from transcript_window import EMPTY_VIEW, render

logger = logging.getLogger(__name__)

LEADING_INT = re.compile(r"\s*([+-]?\d+)")

DEFAULT_SCRIPT = [
    "You: Hello.",
    "Employee: Hi, boss. I'm sorry to bother you, but we have a problem, and the overnight "
    "rollout failed and support is overwhelmed.",
    "You: Give me the one fix that matters most.",
    "Employee: The outage hit the east region first, and now the backlog is growing.",
    "You: Do it now. I want a clean plan in writing in one hour.",
    "Employee: We need approval to pull the incident team and freeze new deployments.",
    "You: Authorize the incident team and keep me updated.",
    "You: Look, I have to go, I am at dinner grabbing a quick snack. Bye.",
]


class Speaker(Enum):
    YOU = "you"
    EMPLOYEE = "employee"

    @property
    def label(self):
        return "You:" if self is Speaker.YOU else "Employee:"


@dataclass(frozen=True)
class Utterance:
    speaker: Speaker
    text: str


class PlaybackPhase(Enum):
    IDLE = "idle"
    ADVANCING = "advancing"
    FINISHED = "finished"


@dataclass
class PlaybackState:
    script: List[Utterance]
    epoch: int
    cursor: int = 0
    pending_advance: Optional[asyncio.TimerHandle] = None
    speech_active: bool = False
    settled: bool = True


def default_script_text():
    return "\n".join(DEFAULT_SCRIPT)


def _classify(line):
    lowered = line.lower()
    for speaker in Speaker:
        prefix = f"{speaker.value}:"
        if lowered.startswith(prefix):
            return Utterance(speaker, line[len(prefix):].strip())
    return Utterance(Speaker.EMPLOYEE, line)


def parse_script(text):
    """
    Parse a two-speaker transcript. Unlabelled lines belong to the employee and
    adjacent lines of the same speaker are merged into one block.
    """
    script = []
    for raw in (text or "").split("\n"):
        line = raw.strip()
        if not line:
            continue
        utterance = _classify(line)
        if script and script[-1].speaker is utterance.speaker:
            merged = f"{script[-1].text} {utterance.text}".strip()
            script[-1] = Utterance(utterance.speaker, merged)
        else:
            script.append(utterance)
    return script


def estimate_speak_seconds(text, wpm):
    words = len(text.split())
    words_per_second = max(1.0, wpm / 60.0)
    return max(MIN_READ_SECONDS, words / words_per_second + 1)


def normalize_pace(value):
    """Coerce a user-entered pace into the supported words-per-minute range."""
    match = LEADING_INT.match(str(value)) if value is not None else None
    wpm = int(match.group(1)) if match else 0
    if not wpm:
        wpm = DEFAULT_PACE_WPM
    low, high = PACE_WPM_RANGE
    return max(low, min(high, wpm))


class ScriptPlayer:
    def __init__(self, overlay, speech, report, loop=None, speech_timeout=SPEECH_FALLBACK_SECONDS):
        self.overlay = overlay
        self.speech = speech
        self.report = report
        self.loop = loop
        self.speech_timeout = speech_timeout
        self.state = None
        self.pace_wpm = DEFAULT_PACE_WPM
        self._epoch = 0

    @property
    def phase(self):
        if self.state is None:
            return PlaybackPhase.IDLE
        if self.state.settled and self.state.cursor >= len(self.state.script):
            return PlaybackPhase.FINISHED
        return PlaybackPhase.ADVANCING

    def start(self, script, pace_wpm=DEFAULT_PACE_WPM):
        self.stop()
        if not script:
            self.report("Add a script first.")
            raise InputValidation("script is empty")

        self._epoch += 1
        self.pace_wpm = pace_wpm
        self.state = PlaybackState(script=list(script), epoch=self._epoch)
        logger.info(f"Script playback started: {len(script)} utterances at {pace_wpm} wpm")
        self._step(self._epoch)

    def stop(self):
        self._epoch += 1
        state = self.state
        self.state = None
        if state is not None:
            if state.pending_advance is not None:
                state.pending_advance.cancel()
            if state.speech_active:
                self.speech.cancel()
            logger.info(f"Script playback stopped at {state.cursor}/{len(state.script)}")
        self.overlay.show_transcript(EMPTY_VIEW)

    def _step(self, epoch):
        state = self.state
        if state is None or epoch != self._epoch:
            return

        if state.cursor >= len(state.script):
            self.overlay.show_transcript(render(state.script, -1))
            self.report("Script finished.")
            logger.info("Script playback finished")
            return

        index = state.cursor
        utterance = state.script[index]
        self.overlay.show_transcript(render(state.script, index))
        state.cursor += 1
        state.settled = False

        if utterance.speaker is Speaker.YOU:
            self.report(f"Your line: {utterance.text}")
            self._arm_timer(state, estimate_speak_seconds(utterance.text, self.pace_wpm))
            return

        self.report(f"Employee: {utterance.text}")
        # arm the fallback first, speak() may complete synchronously
        self._arm_timer(state, self.speech_timeout)
        state.speech_active = True
        try:
            self.speech.speak(
                utterance.text,
                on_done=lambda: self._advance(epoch, index),
                on_error=lambda error=None: self._advance(epoch, index),
            )
        except SpeechUnavailable:
            logger.warning("Speech unavailable, pacing employee line by reading time")
            state.speech_active = False
            self._arm_timer(state, estimate_speak_seconds(utterance.text, self.pace_wpm))

    def _arm_timer(self, state, delay):
        if state.pending_advance is not None:
            state.pending_advance.cancel()
        loop = self.loop or asyncio.get_running_loop()
        state.pending_advance = loop.call_later(delay, self._advance, state.epoch, state.cursor - 1)

    def _advance(self, epoch, index):
        """First of timer, speech completion and speech error wins; the rest are ignored."""
        state = self.state
        if state is None or epoch != self._epoch or state.settled or index != state.cursor - 1:
            return
        state.settled = True
        if state.pending_advance is not None:
            state.pending_advance.cancel()
            state.pending_advance = None
        if state.speech_active:
            state.speech_active = False
            self.speech.cancel()
        self._step(epoch)

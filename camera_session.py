import asyncio
import logging

from attention_scheduler import AttentionScheduler, TORCH_UNAVAILABLE_NOTICE
from camera_feed import VideoStream
from config import (ADJUST_STEP, BRIGHTNESS_RANGE, CAMERA_SOURCE, CONTRAST_RANGE,
                    DEFAULT_PACE_WPM, PREVIEW_SIZE)
from errors import InputValidation, RecognitionFailure, SpeechUnavailable
from gesture_mapper import GestureMapper
from ocr_processor import RecognitionClient
from overlay import OverlayState
from script_player import (PlaybackPhase, ScriptPlayer, default_script_text, normalize_pace,
                           parse_script)
from transcript_window import render
from utils import cover_fit
from zoom_negotiator import ZoomNegotiator

logger = logging.getLogger(__name__)


class CameraSession:
    """
    Owns every piece of state of the overlay tool and maps user actions onto
    the engines. Attention mode and script playback share the overlay, so
    starting one stops the other here; the engines themselves stay independent.
    """

    def __init__(self, speech, recognizer=None, loop=None, stream_factory=VideoStream,
                 preview_size=PREVIEW_SIZE):
        self.loop = loop
        self.speech = speech
        self.recognizer = recognizer or RecognitionClient()
        self.stream_factory = stream_factory
        self.preview_size = preview_size
        self.overlay = OverlayState()
        self.camera = None
        self.frozen_frame = None
        self.script_text = default_script_text()
        self.pace_wpm = DEFAULT_PACE_WPM

        self.zoom = ZoomNegotiator(None, self.overlay, self.set_status, loop)
        self.gestures = GestureMapper(self.zoom)
        self.attention = AttentionScheduler(self.overlay, speech, self.set_status, loop)
        self.player = ScriptPlayer(self.overlay, speech, self.set_status, loop)
        self._tasks = set()
        self.set_status("Ready.")

    def set_status(self, message):
        self.overlay.set_status(message)

    @property
    def is_frozen(self):
        return self.frozen_frame is not None

    # Camera lifecycle

    def start_camera(self, src=CAMERA_SOURCE):
        if self.camera is not None:
            return True
        self.set_status("")
        stream = self.stream_factory(src)
        if not stream.is_initialized():
            stream.stop()
            self.set_status("Unable to start camera.")
            return False

        self.camera = stream
        self.zoom.camera = stream
        self.zoom.configure(stream.capability)
        logger.info("Camera session started")
        return True

    def stop_camera(self):
        if self.camera is None:
            return
        self.stop_attention()
        self.player.stop()
        self.set_frozen(False)
        self.zoom.reset()
        self.zoom.camera = None
        self.camera.stop()
        self.camera = None
        logger.info("Camera session stopped")

    def current_frame(self):
        if self.frozen_frame is not None:
            return self.frozen_frame
        if self.camera is None:
            return None
        ret, frame = self.camera.read()
        if not ret or frame is None:
            return None
        return cover_fit(frame, *self.preview_size)

    def render(self):
        frame = self.current_frame()
        if frame is None:
            return None
        return self.overlay.compose(frame)

    # Image controls

    def set_brightness(self, value):
        self.overlay.brightness = min(BRIGHTNESS_RANGE[1], max(BRIGHTNESS_RANGE[0], float(value)))

    def set_contrast(self, value):
        self.overlay.contrast = min(CONTRAST_RANGE[1], max(CONTRAST_RANGE[0], float(value)))

    def nudge_brightness(self, steps):
        self.set_brightness(self.overlay.brightness + steps * ADJUST_STEP)

    def nudge_contrast(self, steps):
        self.set_contrast(self.overlay.contrast + steps * ADJUST_STEP)

    def set_zoom(self, value):
        return self.zoom.set_zoom(value)

    def reset_controls(self):
        self.overlay.brightness = 1.0
        self.overlay.contrast = 1.0
        self.zoom.set_zoom(1.0)

    def set_frozen(self, frozen):
        if frozen:
            if self.camera is None:
                return
            frame = self.current_frame()
            if frame is not None:
                self.frozen_frame = frame.copy()
            return
        self.frozen_frame = None
        self.overlay.set_ocr_output("")
        if self.attention.active:
            self.stop_attention()

    def toggle_freeze(self):
        self.set_frozen(not self.is_frozen)

    async def toggle_torch(self):
        if self.camera is None or not self.camera.capability.torch_supported:
            return
        enable = not self.attention.torch_enabled
        try:
            await self.camera.apply_torch(enable)
            self.attention.torch_enabled = enable
        except Exception as e:
            logger.warning(f"Torch toggle failed: {e}")
            self.set_status(TORCH_UNAVAILABLE_NOTICE)

    # Attention mode

    async def start_attention(self):
        if self.camera is None:
            self.set_status("Start the camera first.")
            return
        if self.player.phase is not PlaybackPhase.IDLE:
            self.player.stop()

        self.set_frozen(True)
        if not self.attention.start(self.camera):
            return
        frame = self.frozen_frame
        epoch = self.attention.epoch

        self.set_status("Uploading for OCR...")
        try:
            text = await self.recognizer.recognize(frame)
        except RecognitionFailure as e:
            if self._attention_current(epoch):
                message = str(e)
                self.set_status(f"Unable to read text: {message}" if message else "Unable to read text.")
            return

        if not self._attention_current(epoch):
            logger.info("Attention stopped before OCR finished, discarding text")
            return
        if not text:
            self.set_status("No readable text found.")
            return

        self.set_status("Reading menu aloud.")
        self.overlay.set_ocr_output(text)
        try:
            self.speech.speak(text)
        except SpeechUnavailable:
            self.set_status("Speech not supported on this device.")

    def _attention_current(self, epoch):
        return self.attention.active and self.attention.epoch == epoch

    def stop_attention(self):
        self.attention.stop()
        self.overlay.set_ocr_output("")

    def toggle_attention(self):
        if self.attention.active:
            self.stop_attention()
            return None
        return self.spawn(self.start_attention())

    # Script mode

    def preview_script(self, text=None):
        if text is not None:
            self.script_text = text
        self.overlay.show_transcript(render(parse_script(self.script_text), -1))

    def start_script(self, text=None, pace=None):
        if text is not None:
            self.script_text = text
        if self.attention.active:
            self.stop_attention()
        self.pace_wpm = normalize_pace(pace if pace is not None else self.pace_wpm)
        try:
            self.player.start(parse_script(self.script_text), self.pace_wpm)
        except InputValidation as e:
            logger.warning(f"Script not started: {e}")
            return False
        return True

    def stop_script(self):
        self.player.stop()

    def toggle_script(self):
        if self.player.phase is PlaybackPhase.ADVANCING:
            self.stop_script()
            return False
        return self.start_script()

    # Recognition service

    async def test_key(self):
        self.set_status("Testing key...")
        prefix = await self.recognizer.test_key()
        if prefix:
            self.set_status(f"Key prefix: {prefix}...")
        else:
            self.set_status("Key test failed.")
        return prefix

    def close(self):
        self.stop_attention()
        self.player.stop()
        self.stop_camera()

    def spawn(self, coro):
        loop = self.loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

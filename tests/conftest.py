"""Shared pytest configuration and fixtures for the overlay test suite."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from errors import HardwareUnsupported, SpeechUnavailable  # noqa: E402
from overlay import OverlayState  # noqa: E402
from zoom_negotiator import CameraCapability  # noqa: E402


# =============================================================================
# Manual event loop
# =============================================================================

class ManualHandle:
    def __init__(self, when, seq, callback, args):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    def cancelled(self):
        return self._cancelled


class ManualTask:
    """
    Coroutine scheduled on a ManualLoop. It runs on the loop's next turn, like
    a real task, and must never really suspend.
    """

    def __init__(self, loop, coro):
        self._coro = coro
        self._callbacks = []
        self._done = False
        self._cancelled = False
        self.result = None
        self.exception = None
        self._handle = loop.call_soon(self._step)

    def _step(self):
        try:
            self._coro.send(None)
        except StopIteration as stop:
            self.result = stop.value
        except Exception as e:
            self.exception = e
        else:
            self._coro.close()
            raise RuntimeError("ManualLoop cannot run coroutines that suspend")
        self._finish()

    def _finish(self):
        self._done = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def cancel(self):
        if self._done:
            return False
        self._cancelled = True
        self._handle.cancel()
        self._coro.close()
        self._finish()
        return True

    def cancelled(self):
        return self._cancelled

    def done(self):
        return self._done

    def add_done_callback(self, callback):
        if self._done:
            callback(self)
        else:
            self._callbacks.append(callback)


class ManualLoop:
    """
    Stand-in for the asyncio loop with a virtual clock: timers and tasks only
    run when the test calls advance() or fire_next().
    """

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._handles = []

    def time(self):
        return self.now

    def call_later(self, delay, callback, *args):
        self._seq += 1
        handle = ManualHandle(self.now + delay, self._seq, callback, args)
        self._handles.append(handle)
        return handle

    def call_soon(self, callback, *args):
        return self.call_later(0, callback, *args)

    call_soon_threadsafe = call_soon

    def create_task(self, coro):
        return ManualTask(self, coro)

    def pending(self):
        return [h for h in self._handles if not h.cancelled()]

    def next_delay(self):
        pending = self.pending()
        if not pending:
            return None
        return min(h.when for h in pending) - self.now

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [h for h in self.pending() if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback(*handle.args)
        self._handles = self.pending()
        self.now = target

    def fire_next(self):
        delay = self.next_delay()
        if delay is None:
            return False
        self.advance(max(0.0, delay))
        return True


# =============================================================================
# Collaborator fakes
# =============================================================================

class FakeCamera:
    def __init__(self, zoom_range=None, torch_supported=False, fail_zoom=False, fail_torch=False,
                 initialized=True, frame_shape=(480, 640, 3)):
        self.capability = CameraCapability(zoom_range=zoom_range, torch_supported=torch_supported)
        self.fail_zoom = fail_zoom
        self.fail_torch = fail_torch
        self.initialized = initialized
        self.frame = np.full(frame_shape, 90, dtype=np.uint8)
        self.zoom_requests = []
        self.torch_requests = []
        self.stopped = False

    def is_initialized(self):
        return self.initialized and not self.stopped

    def read(self):
        return True, self.frame.copy()

    async def apply_zoom(self, value):
        self.zoom_requests.append(value)
        if self.fail_zoom:
            raise HardwareUnsupported("zoom", "rejected")

    async def apply_torch(self, enabled):
        self.torch_requests.append(enabled)
        if self.fail_torch:
            raise HardwareUnsupported("torch", "rejected")

    def stop(self):
        self.stopped = True


class FakeSpeech:
    def __init__(self, available=True):
        self.available = available
        self.spoken = []
        self.cancels = 0
        self._callbacks = None

    def speak(self, text, rate=1.0, on_done=None, on_error=None):
        if not self.available:
            raise SpeechUnavailable("Speech not supported on this device.")
        self._callbacks = None
        self.spoken.append(text)
        self._callbacks = (on_done, on_error)
        return len(self.spoken)

    def cancel(self):
        self.cancels += 1
        self._callbacks = None

    @property
    def in_flight(self):
        return self._callbacks is not None

    def finish(self):
        on_done, _ = self._callbacks
        self._callbacks = None
        if on_done:
            on_done()

    def fail(self, error=None):
        _, on_error = self._callbacks
        self._callbacks = None
        if on_error:
            on_error(error or RuntimeError("synthesis failed"))


class RecordingOverlay(OverlayState):
    def __init__(self):
        super().__init__()
        self.flashes = []
        self.transcripts = []

    def set_flash(self, color, opacity):
        self.flashes.append((color, opacity))
        super().set_flash(color, opacity)

    def show_transcript(self, view):
        self.transcripts.append(view)
        super().show_transcript(view)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def manual_loop():
    return ManualLoop()


@pytest.fixture
def overlay():
    return RecordingOverlay()


@pytest.fixture
def speech():
    return FakeSpeech()


@pytest.fixture
def statuses():
    return []


@pytest.fixture
def report(statuses):
    return statuses.append

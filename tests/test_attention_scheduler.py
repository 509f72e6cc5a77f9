"""Unit tests for the randomized attention loop."""

import asyncio
import random

import pytest

from attention_scheduler import AttentionScheduler, TORCH_UNAVAILABLE_NOTICE
from config import FLASH_OPACITY_RANGE, FLASH_PALETTE
from tests.conftest import FakeCamera, FakeSpeech, RecordingOverlay


class SlowTorchCamera(FakeCamera):
    """Torch writes take a while and queue behind one lock, like VideoStream."""

    def __init__(self):
        super().__init__(torch_supported=True)
        self.lock = asyncio.Lock()

    async def apply_torch(self, enabled):
        async with self.lock:
            await asyncio.sleep(0.05)
            self.torch_requests.append(enabled)


@pytest.fixture
def scheduler(overlay, speech, report, manual_loop):
    return AttentionScheduler(overlay, speech, report, loop=manual_loop, rng=random.Random(7))


class TestStart:
    def test_requires_a_camera_session(self, scheduler, overlay, statuses, manual_loop):
        assert not scheduler.start(None)
        assert not scheduler.start(FakeCamera(initialized=False))
        assert statuses[-1] == "Start the camera first."
        assert not scheduler.active
        assert overlay.flashes == []
        assert manual_loop.pending() == []

    def test_flashes_immediately_and_schedules_one_tick(self, scheduler, overlay, manual_loop):
        assert scheduler.start(FakeCamera())
        assert len(overlay.flashes) == 1
        color, opacity = overlay.flashes[0]
        assert color in FLASH_PALETTE
        assert FLASH_OPACITY_RANGE[0] <= opacity <= FLASH_OPACITY_RANGE[1]
        assert not overlay.flash_hidden
        assert len(manual_loop.pending()) == 1
        assert 0.120 <= manual_loop.next_delay() <= 0.520

    def test_ticks_keep_rescheduling(self, scheduler, overlay, manual_loop):
        scheduler.start(FakeCamera())
        for _ in range(20):
            assert manual_loop.fire_next()
            assert len(manual_loop.pending()) == 1
        assert len(overlay.flashes) == 21

    def test_restart_never_leaves_two_ticks_pending(self, scheduler, manual_loop):
        camera = FakeCamera()
        scheduler.start(camera)
        scheduler.start(camera)
        assert len(manual_loop.pending()) == 1


class TestStop:
    def test_stop_before_first_tick_has_no_side_effects(self, scheduler, overlay, manual_loop):
        camera = FakeCamera(torch_supported=True)
        scheduler.start(camera)
        flashes = len(overlay.flashes)
        torch_requests = len(camera.torch_requests)
        scheduler.stop()
        manual_loop.advance(5.0)
        assert len(overlay.flashes) == flashes
        assert len(camera.torch_requests) == torch_requests
        assert manual_loop.pending() == []

    def test_stale_tick_is_ignored_even_if_it_fires(self, scheduler, overlay):
        scheduler.start(FakeCamera())
        handle = scheduler.pending_tick
        scheduler.stop()
        # simulate a timer that was already being dispatched when stop() ran
        handle.callback(*handle.args)
        assert len(overlay.flashes) == 1
        assert overlay.flash_hidden

    def test_stop_clears_overlay_speech_and_status(self, scheduler, overlay, speech, statuses):
        scheduler.start(FakeCamera())
        scheduler.stop()
        assert not scheduler.active
        assert scheduler.pending_tick is None
        assert overlay.flash_hidden
        assert overlay.flash_opacity == 0.0
        assert speech.cancels == 1
        assert statuses[-1] == ""

    def test_stop_cancels_the_queued_torch_request(self, scheduler, manual_loop):
        camera = FakeCamera(torch_supported=True)
        scheduler.start(camera)
        task = scheduler.torch_task
        scheduler.stop()
        assert task.cancelled()
        assert scheduler.torch_task is None
        manual_loop.advance(1.0)
        assert camera.torch_requests == []

    def test_stop_when_idle_is_harmless(self, scheduler, overlay):
        scheduler.stop()
        assert overlay.flash_hidden


class TestTorch:
    def test_torch_is_toggled_when_supported(self, scheduler, manual_loop):
        camera = FakeCamera(torch_supported=True)
        scheduler.start(camera)
        manual_loop.advance(0)
        for _ in range(9):
            manual_loop.fire_next()
        assert len(camera.torch_requests) == 10
        assert scheduler.torch_enabled == camera.torch_requests[-1]

    def test_no_torch_requests_without_capability(self, scheduler, manual_loop):
        camera = FakeCamera()
        scheduler.start(camera)
        manual_loop.fire_next()
        assert camera.torch_requests == []

    def test_torch_failure_does_not_halt_the_loop(self, scheduler, overlay, statuses, manual_loop):
        camera = FakeCamera(torch_supported=True, fail_torch=True)
        scheduler.start(camera)
        manual_loop.advance(0)
        assert statuses[-1] == TORCH_UNAVAILABLE_NOTICE
        manual_loop.fire_next()
        manual_loop.fire_next()
        assert scheduler.active
        assert len(overlay.flashes) == 3


class TestRealEventLoop:
    @pytest.mark.asyncio
    async def test_stop_right_after_start(self):
        overlay = RecordingOverlay()
        scheduler = AttentionScheduler(overlay, FakeSpeech(), lambda message: None)
        scheduler.start(FakeCamera())
        scheduler.stop()
        await asyncio.sleep(0.6)
        assert len(overlay.flashes) == 1
        assert overlay.flash_hidden

    @pytest.mark.asyncio
    async def test_loop_runs_until_stopped(self):
        overlay = RecordingOverlay()
        scheduler = AttentionScheduler(overlay, FakeSpeech(), lambda message: None)
        scheduler.start(FakeCamera())
        await asyncio.sleep(0.6)
        scheduler.stop()
        count = len(overlay.flashes)
        assert count >= 2
        await asyncio.sleep(0.6)
        assert len(overlay.flashes) == count

    @pytest.mark.asyncio
    async def test_stop_right_after_start_sends_no_torch_request(self):
        camera = FakeCamera(torch_supported=True)
        scheduler = AttentionScheduler(RecordingOverlay(), FakeSpeech(), lambda message: None)
        scheduler.start(camera)
        scheduler.stop()
        await asyncio.sleep(0.05)
        assert camera.torch_requests == []
        assert not scheduler.torch_enabled

    @pytest.mark.asyncio
    async def test_torch_request_in_flight_is_abandoned_on_stop(self):
        camera = SlowTorchCamera()
        scheduler = AttentionScheduler(RecordingOverlay(), FakeSpeech(), lambda message: None)
        scheduler.start(camera)
        await asyncio.sleep(0.3)
        scheduler.stop()
        count = len(camera.torch_requests)
        await asyncio.sleep(0.3)
        assert len(camera.torch_requests) == count

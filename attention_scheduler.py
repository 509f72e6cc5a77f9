import asyncio
import logging
import random

from config import FLASH_DELAY_RANGE_MS, FLASH_OPACITY_RANGE, FLASH_PALETTE

logger = logging.getLogger(__name__)

TORCH_UNAVAILABLE_NOTICE = "Torch not available on this device."


class AttentionScheduler:
    """
    Randomized flash/torch loop.

    Every tick captures the epoch it was scheduled in. stop() bumps the epoch
    and cancels the pending timer and the in-flight torch request, so a timer
    that fires while the stop is being processed finds a stale epoch and does
    nothing, and no torch write reaches the camera after stop().
    """

    def __init__(self, overlay, speech, report, loop=None, rng=None):
        self.overlay = overlay
        self.speech = speech
        self.report = report
        self.loop = loop
        self.rng = rng or random.Random()
        self.active = False
        self.pending_tick = None
        self.camera = None
        self.torch_enabled = False
        self.torch_task = None
        self._epoch = 0
        self._tasks = set()

    @property
    def epoch(self):
        return self._epoch

    def start(self, camera):
        if camera is None or not camera.is_initialized():
            self.report("Start the camera first.")
            return False
        self._cancel_pending()
        self._cancel_torch()
        self._epoch += 1
        self.camera = camera
        self.active = True
        logger.info(f"Attention pattern started (epoch {self._epoch})")
        self._run(self._epoch)
        return True

    def stop(self):
        was_active = self.active
        self.active = False
        self._epoch += 1
        self._cancel_pending()
        self._cancel_torch()
        self.overlay.clear_flash()
        self.speech.cancel()
        self.report("")
        if was_active:
            logger.info("Attention pattern stopped")

    def _run(self, epoch):
        if not self.active or epoch != self._epoch:
            return
        self.pending_tick = None

        color = self.rng.choice(FLASH_PALETTE)
        opacity = self.rng.uniform(*FLASH_OPACITY_RANGE)
        self.overlay.set_flash(color, opacity)

        capability = getattr(self.camera, "capability", None)
        if capability is not None and capability.torch_supported:
            enable = self.rng.random() > 0.5
            self._cancel_torch()
            self.torch_task = self._spawn(self._apply_torch(enable, epoch))

        delay_ms = int(self.rng.uniform(*FLASH_DELAY_RANGE_MS))
        self._cancel_pending()
        self.pending_tick = self._get_loop().call_later(delay_ms / 1000.0, self._run, epoch)

    async def _apply_torch(self, enable, epoch):
        if not self._is_current(epoch):
            return
        try:
            await self.camera.apply_torch(enable)
        except Exception as e:
            if self._is_current(epoch):
                logger.warning(f"Torch request failed: {e}")
                self.report(TORCH_UNAVAILABLE_NOTICE)
            return
        if self._is_current(epoch):
            self.torch_enabled = enable

    def _is_current(self, epoch):
        return self.active and epoch == self._epoch

    def _cancel_pending(self):
        if self.pending_tick is not None:
            self.pending_tick.cancel()
            self.pending_tick = None

    def _cancel_torch(self):
        if self.torch_task is not None:
            self.torch_task.cancel()
            self.torch_task = None

    def _get_loop(self):
        return self.loop or asyncio.get_running_loop()

    def _spawn(self, coro):
        task = self._get_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

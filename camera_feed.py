import asyncio
import cv2
import logging
import time
from threading import Thread

from config import HARDWARE_ZOOM_RANGE, TORCH_PROPERTY
from errors import HardwareUnsupported
from zoom_negotiator import CameraCapability

logger = logging.getLogger(__name__)


class VideoStream:
    """
    Live camera session: a background thread keeps the latest frame, and
    zoom/torch constraint requests are applied to the device one at a time.
    """

    def __init__(self, src=0, capture=None):
        logger.info(f"Initializing VideoStream with source: {src}")
        self.src = src
        self.cap = None
        self.ret = False
        self.frame = None
        self.stopped = False
        self.thread = None
        self.capability = CameraCapability()
        self.initialization_successful = False
        self._constraint_lock = None

        try:
            self.cap = capture if capture is not None else cv2.VideoCapture(src)
            if not self.cap.isOpened():
                logger.error(f"Failed to open camera source {src}")
                return

            self.ret, self.frame = self.cap.read()
            if not self.ret or self.frame is None:
                logger.error("Failed to read initial frame from camera")
                return

            logger.info(f"Camera resolution: {self.frame.shape[1]}x{self.frame.shape[0]}")
            self.capability = self.probe_capability()

            self.thread = Thread(target=self.update, args=(), daemon=True)
            self.thread.start()

            # Wait a moment for thread to start
            time.sleep(0.1)
            if self.thread.is_alive():
                self.initialization_successful = True
                logger.info("VideoStream initialization completed successfully")
            else:
                logger.error("Background thread failed to start")

        except Exception as e:
            logger.error(f"Error during VideoStream initialization: {e}")
            self.cleanup()

    def is_initialized(self):
        """Check if the video stream was initialized successfully"""
        return self.initialization_successful and self.cap is not None and self.cap.isOpened()

    def probe_capability(self):
        """
        Ask the backend which constraints it accepts. Zoom counts as hardware
        zoom when writing back the current CAP_PROP_ZOOM value succeeds.
        """
        zoom_range = None
        try:
            current = self.cap.get(cv2.CAP_PROP_ZOOM)
            if current > 0 and self.cap.set(cv2.CAP_PROP_ZOOM, current):
                zoom_range = dict(HARDWARE_ZOOM_RANGE)
        except cv2.error as e:
            logger.warning(f"Zoom probe failed: {e}")

        torch_supported = False
        if TORCH_PROPERTY is not None:
            try:
                torch_supported = bool(self.cap.set(TORCH_PROPERTY, 0))
            except cv2.error as e:
                logger.warning(f"Torch probe failed: {e}")

        capability = CameraCapability(zoom_range=zoom_range, torch_supported=torch_supported)
        logger.info(f"Camera capability: zoom={'hardware' if zoom_range else 'none'}, torch={torch_supported}")
        return capability

    def update(self):
        """Method to read frames from camera in background thread"""
        logger.info("Background update thread started")
        frame_count = 0
        consecutive_failures = 0
        max_consecutive_failures = 30

        while not self.stopped:
            try:
                if self.cap is None or not self.cap.isOpened():
                    logger.error("Camera not available in background thread")
                    break

                ret, frame = self.cap.read()
                if ret and frame is not None:
                    self.ret = ret
                    self.frame = frame
                    consecutive_failures = 0
                    frame_count += 1
                else:
                    consecutive_failures += 1
                    logger.warning(f"Background thread: Failed to read frame (attempt {consecutive_failures}/{max_consecutive_failures})")
                    if consecutive_failures >= max_consecutive_failures:
                        logger.error("Too many consecutive failures in background thread, stopping")
                        break
                    time.sleep(0.01)

            except Exception as e:
                logger.error(f"Error in background update thread: {e}")
                consecutive_failures += 1
                if consecutive_failures >= max_consecutive_failures:
                    break
                time.sleep(0.01)

        logger.info(f"Background update thread stopped after {frame_count} frames")

    def read(self):
        """Return the latest frame"""
        if not self.is_initialized():
            return False, None
        frame = self.frame
        if frame is None:
            logger.warning("No frame available")
            return False, None
        return self.ret, frame.copy()

    async def apply_zoom(self, value):
        if self.capability.zoom_range is None:
            raise HardwareUnsupported("zoom")
        await self._apply_constraint(cv2.CAP_PROP_ZOOM, value, "zoom")

    async def apply_torch(self, enabled):
        if not self.capability.torch_supported:
            raise HardwareUnsupported("torch")
        await self._apply_constraint(TORCH_PROPERTY, 1 if enabled else 0, "torch")

    async def _apply_constraint(self, prop, value, feature):
        if self._constraint_lock is None:
            self._constraint_lock = asyncio.Lock()
        async with self._constraint_lock:
            if not self.is_initialized():
                raise HardwareUnsupported(feature, "camera stopped")
            loop = asyncio.get_running_loop()
            try:
                accepted = await loop.run_in_executor(None, self.cap.set, prop, value)
            except cv2.error as e:
                raise HardwareUnsupported(feature, str(e)) from e
            if not accepted:
                raise HardwareUnsupported(feature, f"device rejected {value}")

    def stop(self):
        """Stop the video stream and release camera"""
        logger.info("Stopping video stream")
        try:
            self.stopped = True

            if self.thread and self.thread.is_alive():
                self.thread.join(timeout=2.0)
                if self.thread.is_alive():
                    logger.warning("Background thread did not finish gracefully")

            if self.cap is not None:
                self.cap.release()
                logger.info("Camera released successfully")

        except Exception as e:
            logger.error(f"Error stopping video stream: {e}")
        finally:
            self.initialization_successful = False

    def cleanup(self):
        """Clean up resources"""
        try:
            if self.cap is not None:
                self.cap.release()
                self.cap = None
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")

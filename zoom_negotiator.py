import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from config import DIGITAL_ZOOM_RANGE, HARDWARE_ZOOM_DEFAULTS

logger = logging.getLogger(__name__)

ZOOM_UNSUPPORTED_NOTICE = "Zoom not supported by this camera."


class ZoomMode(Enum):
    HARDWARE = "hardware"
    DIGITAL = "digital"


@dataclass(frozen=True)
class ZoomRange:
    min: float
    max: float
    step: float

    def clamp(self, value):
        return min(self.max, max(self.min, value))

    @classmethod
    def from_reported(cls, reported):
        """Build a range from hardware-reported fields, defaulting the missing ones."""
        reported = reported or {}

        def pick(key):
            value = reported.get(key)
            return float(HARDWARE_ZOOM_DEFAULTS[key] if value is None else value)

        return cls(min=pick("min"), max=pick("max"), step=pick("step"))


@dataclass(frozen=True)
class CameraCapability:
    zoom_range: Optional[dict] = None
    torch_supported: bool = False


@dataclass
class ZoomState:
    mode: ZoomMode
    value: float
    range: ZoomRange


class ZoomNegotiator:
    """
    Owns the zoom state of one camera session.

    The mode is picked once from the capability: hardware zoom is requested from
    the device, digital zoom scales the rendered frame. Both are never combined,
    otherwise a hardware-zoomed stream would be magnified twice.
    """

    def __init__(self, camera, view, report, loop=None):
        self.camera = camera
        self.view = view
        self.report = report
        self.loop = loop
        self.state = None
        self.requested_zoom = 1.0
        self.zoom_task = None
        self._target_zoom = None
        self._tasks = set()

    def configure(self, capability):
        if capability.zoom_range is not None:
            zoom_range = ZoomRange.from_reported(capability.zoom_range)
            self.state = ZoomState(ZoomMode.HARDWARE, zoom_range.clamp(self.requested_zoom), zoom_range)
        else:
            zoom_range = ZoomRange(**DIGITAL_ZOOM_RANGE)
            self.state = ZoomState(ZoomMode.DIGITAL, 1.0, zoom_range)
            self.view.set_magnification(1.0)
        self.requested_zoom = self.state.value
        logger.info(f"Zoom negotiated: {self.state.mode.value} mode, range "
                    f"{zoom_range.min}-{zoom_range.max} step {zoom_range.step}, value {self.state.value:.2f}")
        return replace(self.state)

    def reset(self):
        """Forget the session's zoom state and drop queued hardware requests."""
        self.state = None
        self._target_zoom = None
        if self.zoom_task is not None:
            self.zoom_task.cancel()
            self.zoom_task = None

    @property
    def value(self):
        return self.state.value if self.state else self.requested_zoom

    def set_zoom(self, value):
        if self.state is None:
            self.requested_zoom = float(value)
            logger.info(f"No camera session, remembering requested zoom {value:.2f}")
            return None

        self.state.value = self.state.range.clamp(float(value))
        self.requested_zoom = self.state.value

        if self.state.mode is ZoomMode.HARDWARE:
            self._request_hardware_zoom(self.state.value)
        else:
            self.view.set_magnification(max(1.0, self.state.value))
        return self.state.value

    def _request_hardware_zoom(self, value):
        # a pinch produces many moves, only the latest pending value is sent
        self._target_zoom = value
        if self.zoom_task is None or self.zoom_task.done():
            self.zoom_task = self._spawn(self._drain_hardware_zoom())

    async def _drain_hardware_zoom(self):
        while self._target_zoom is not None:
            value, self._target_zoom = self._target_zoom, None
            try:
                await self.camera.apply_zoom(value)
                logger.info(f"Hardware zoom applied: {value:.2f}")
            except Exception as e:
                # state.value keeps the requested value even though the device refused it
                logger.warning(f"Hardware zoom {value:.2f} rejected: {e}")
                if self.state is not None:
                    self.report(ZOOM_UNSUPPORTED_NOTICE)

    def _spawn(self, coro):
        loop = self.loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

import logging
import math
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GestureSample:
    start_distance: float
    start_zoom: float


def point_distance(points):
    (x1, y1), (x2, y2) = points
    return math.hypot(x1 - x2, y1 - y2)


class GestureMapper:
    """Maps a two-point pinch onto the zoom negotiator."""

    def __init__(self, zoom):
        self.zoom = zoom
        self.sample = None

    @property
    def active(self):
        return self.sample is not None

    def on_gesture_start(self, points):
        if len(points) != 2:
            return
        distance = point_distance(points)
        if distance <= 0:
            logger.info("Ignoring pinch start with coincident points")
            return
        self.sample = GestureSample(start_distance=distance, start_zoom=self.zoom.value)
        logger.info(f"Pinch started at distance {distance:.1f}px, zoom {self.sample.start_zoom:.2f}")

    def on_gesture_move(self, points):
        """
        Returns True when the move was consumed, i.e. the platform's own
        pinch handling must be suppressed.
        """
        if self.sample is None or len(points) != 2:
            return False
        scale = point_distance(points) / self.sample.start_distance
        proposed = self.sample.start_zoom * scale
        if self.zoom.state is not None:
            proposed = self.zoom.state.range.clamp(proposed)
        self.zoom.set_zoom(proposed)
        return True

    def on_gesture_end(self):
        self.sample = None

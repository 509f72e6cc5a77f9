import cv2
import asyncio
import logging
import sys
from camera_session import CameraSession
from ocr_processor import RecognitionClient
from speech_engine import SpeechEngine
from config import ASYNC_SLEEP_TIME, CAMERA_SOURCE, MAX_CONSECUTIVE_FAILURES, WINDOW_TITLE, ZOOM_KEY_STEP

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

KEY_HELP = [
    "q quit",
    "f freeze/unfreeze",
    "a attention mode",
    "s start/stop script",
    "p preview script",
    "t torch",
    "+/- zoom",
    "b/B brightness",
    "c/C contrast",
    "r reset",
    "k test key",
    "right-drag pinch zoom",
]


class PinchEmulator:
    """
    A right-button drag stands in for a two-finger pinch: one point is pinned
    at the frame center and the cursor is the second finger.
    """

    def __init__(self, gestures):
        self.gestures = gestures
        self.center = (0, 0)

    def points(self, x, y):
        return [self.center, (x, y)]

    def on_mouse(self, event, x, y, flags, param):
        if event == cv2.EVENT_RBUTTONDOWN:
            self.gestures.on_gesture_start(self.points(x, y))
        elif event == cv2.EVENT_MOUSEMOVE and flags & cv2.EVENT_FLAG_RBUTTON:
            self.gestures.on_gesture_move(self.points(x, y))
        elif event == cv2.EVENT_RBUTTONUP:
            self.gestures.on_gesture_end()


def handle_key(session, key):
    """Returns False when the application should quit."""
    if key == ord('q'):
        logger.info("'q' key pressed, stopping")
        return False
    if key == ord('f'):
        session.toggle_freeze()
    elif key == ord('a'):
        session.toggle_attention()
    elif key == ord('s'):
        session.toggle_script()
    elif key == ord('p'):
        session.preview_script()
    elif key == ord('t'):
        session.spawn(session.toggle_torch())
    elif key in (ord('+'), ord('=')):
        session.set_zoom(session.zoom.value + ZOOM_KEY_STEP)
    elif key == ord('-'):
        session.set_zoom(session.zoom.value - ZOOM_KEY_STEP)
    elif key == ord('b'):
        session.nudge_brightness(-1)
    elif key == ord('B'):
        session.nudge_brightness(1)
    elif key == ord('c'):
        session.nudge_contrast(-1)
    elif key == ord('C'):
        session.nudge_contrast(1)
    elif key == ord('r'):
        session.reset_controls()
    elif key == ord('k'):
        session.spawn(session.test_key())
    return True


async def process_feed():
    logger.info("Starting process_feed function")
    loop = asyncio.get_running_loop()
    speech = SpeechEngine(loop)
    session = CameraSession(speech, RecognitionClient(), loop)

    try:
        if not session.start_camera(CAMERA_SOURCE):
            logger.error("Failed to initialize video stream")
            return

        cv2.namedWindow(WINDOW_TITLE)
        pinch = PinchEmulator(session.gestures)
        pinch.center = (session.preview_size[0] // 2, session.preview_size[1] // 2)
        cv2.setMouseCallback(WINDOW_TITLE, pinch.on_mouse)

        consecutive_failures = 0
        while True:
            display = session.render()
            if display is None:
                consecutive_failures += 1
                logger.warning(f"Failed to read frame (attempt {consecutive_failures}/{MAX_CONSECUTIVE_FAILURES})")
                if consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                    logger.error("Too many consecutive frame read failures, stopping")
                    break
                await asyncio.sleep(0.1)
                continue
            consecutive_failures = 0

            cv2.imshow(WINDOW_TITLE, display)
            key = cv2.waitKey(1) & 0xFF
            if key != 0xFF and not handle_key(session, key):
                break

            # Let timers, speech callbacks and OCR requests run
            await asyncio.sleep(ASYNC_SLEEP_TIME)

    finally:
        logger.info("Cleaning up resources...")
        session.close()
        speech.close()
        try:
            cv2.destroyAllWindows()
        except Exception as e:
            logger.error(f"Error closing windows: {e}")


if __name__ == "__main__":
    try:
        logger.info("Starting camera overlay")
        logger.info("Keys: " + ", ".join(KEY_HELP))
        asyncio.run(process_feed())
        logger.info("Application finished successfully")
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.error(f"Application crashed with error: {e}")
        sys.exit(1)

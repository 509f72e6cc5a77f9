"""
Configuration file for the camera overlay tool.
"""
import os

# Camera configuration
CAMERA_SOURCE = 0         # Camera source (0 for default camera)
# Zoom range reported for cameras whose backend accepts CAP_PROP_ZOOM.
# Missing keys fall back to HARDWARE_ZOOM_DEFAULTS.
HARDWARE_ZOOM_RANGE = {"min": 1, "max": 3}
HARDWARE_ZOOM_DEFAULTS = {"min": 1.0, "max": 3.0, "step": 0.1}
DIGITAL_ZOOM_RANGE = {"min": 1.0, "max": 3.0, "step": 0.05}
# cv2 property id that drives the torch LED, None when the backend has none
TORCH_PROPERTY = None
MAX_CONSECUTIVE_FAILURES = 10  # Maximum consecutive frame read failures

# Display configuration
WINDOW_TITLE = "Camera Overlay"
PREVIEW_SIZE = (960, 540)     # Width x height of the preview the frame is fitted to
STATUS_TEXT_COLOR = (255, 255, 255)  # White
OCR_TEXT_COLOR = (0, 255, 0)         # Green
YOU_LINE_COLOR = (255, 220, 120)     # Light blue (BGR)
EMPLOYEE_LINE_COLOR = (200, 200, 200)
ACTIVE_LINE_COLOR = (0, 255, 255)    # Yellow
ASYNC_SLEEP_TIME = 0.02       # Frame loop pacing

# Image adjustment configuration
BRIGHTNESS_RANGE = (0.5, 2.0)
CONTRAST_RANGE = (0.5, 2.0)
ADJUST_STEP = 0.05
ZOOM_KEY_STEP = 0.1

# Attention mode configuration
FLASH_PALETTE = ["#ffffff", "#fef08a", "#a5f3fc", "#fca5a5", "#d9f99d"]
FLASH_OPACITY_RANGE = (0.35, 0.9)
FLASH_DELAY_RANGE_MS = (120, 520)

# Script mode configuration
DEFAULT_PACE_WPM = 140
PACE_WPM_RANGE = (80, 220)
MIN_READ_SECONDS = 2.0
SPEECH_FALLBACK_SECONDS = 8.0
TRANSCRIPT_WINDOW_SIZE = 3

# Speech configuration
SPEECH_BASE_RATE_WPM = 160    # pyttsx3 rate used for a speech rate of 1.0

# Recognition configuration
OCR_SERVICE_URL = os.environ.get("OCR_SERVICE_URL", "http://127.0.0.1:8787/api/ocr")
OCR_REQUEST_TIMEOUT = 30.0
JPEG_QUALITY = 92
OCR_SERVER_HOST = "127.0.0.1"
OCR_SERVER_PORT = 8787
OCR_BACKEND = os.environ.get("OCR_BACKEND", "vision")   # "vision" or "tesseract"
VISION_API_URL = "https://vision.googleapis.com/v1/images:annotate"
VISION_API_KEY_ENV = "GOOGLE_VISION_API_KEY"
KEY_PREFIX_LENGTH = 5
TESSERACT_CONFIG = '--oem 3 --psm 6'

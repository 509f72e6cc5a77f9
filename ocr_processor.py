import cv2
import httpx
import io
import logging
import numpy as np
import pytesseract
from PIL import Image

from config import JPEG_QUALITY, OCR_REQUEST_TIMEOUT, OCR_SERVICE_URL, TESSERACT_CONFIG
from errors import RecognitionFailure
from utils import encode_jpeg_base64

logger = logging.getLogger(__name__)


class RecognitionClient:
    """Client for the /api/ocr recognition proxy."""

    def __init__(self, url=OCR_SERVICE_URL, timeout=OCR_REQUEST_TIMEOUT, transport=None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def _client(self):
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def recognize(self, frame):
        """
        Send a frame as base64 JPEG and return the recognised text, trimmed.
        Raises RecognitionFailure on a non-2xx answer or an error payload.
        """
        if frame is None:
            raise RecognitionFailure("no frame to read")
        image = encode_jpeg_base64(frame, JPEG_QUALITY)
        logger.info(f"Uploading {len(image)} base64 bytes for OCR")

        try:
            async with self._client() as client:
                response = await client.post(self.url, json={"image": image})
        except httpx.HTTPError as e:
            raise RecognitionFailure(f"OCR request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and error.get("message"):
            logger.error(f"OCR service answered {response.status_code}: {error['message']}")
            raise RecognitionFailure(error["message"])
        if not response.is_success:
            logger.error(f"OCR service answered {response.status_code}")
            raise RecognitionFailure("OCR request failed")
        if not isinstance(data, dict):
            raise RecognitionFailure("OCR response was not JSON")

        text = (data.get("text") or "").strip()
        logger.info(f"OCR returned {len(text)} characters")
        return text

    async def test_key(self):
        """Credential smoke test, returns the key prefix or None."""
        try:
            async with self._client() as client:
                response = await client.get(self.url)
            if not response.is_success:
                logger.warning(f"Key test answered {response.status_code}")
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Key test failed: {e}")
            return None
        if isinstance(data, dict) and data.get("prefix"):
            return data["prefix"]
        return None


class TesseractRecognizer:
    """Local recognition backend used by the proxy when no cloud key is wanted."""

    def __init__(self, config=TESSERACT_CONFIG):
        logger.info("Initializing TesseractRecognizer")
        self.tesseract_config = config
        self.initialization_successful = False
        try:
            pytesseract.get_tesseract_version()
            self.initialization_successful = True
            logger.info("Tesseract is available")
        except Exception as e:
            logger.error(f"Failed to initialize Tesseract: {e}")
            logger.error("Please install Tesseract: brew install tesseract (macOS) or apt-get install tesseract-ocr (Ubuntu)")

    def is_initialized(self):
        return self.initialization_successful

    def preprocess_frame(self, frame):
        """
        Preprocess frame for better OCR results.
        """
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        blurred = cv2.GaussianBlur(gray, (3, 3), 0)
        thresh = cv2.adaptiveThreshold(
            blurred, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
        )
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (2, 2))
        return cv2.morphologyEx(thresh, cv2.MORPH_CLOSE, kernel)

    def recognize_bytes(self, image_bytes):
        if not self.is_initialized():
            raise RecognitionFailure("Tesseract is not installed")
        try:
            pil_image = Image.open(io.BytesIO(image_bytes)).convert('RGB')
        except Exception as e:
            raise RecognitionFailure(f"Unreadable image: {e}") from e

        frame = cv2.cvtColor(np.array(pil_image), cv2.COLOR_RGB2BGR)
        processed = self.preprocess_frame(frame)
        text = pytesseract.image_to_string(Image.fromarray(processed), config=self.tesseract_config)
        logger.info(f"Tesseract extracted {len(text.strip())} characters")
        return text.strip()

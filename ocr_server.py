'''
Recognition proxy for the camera overlay tool.

GET  /api/ocr  -> {"prefix": "<first characters of the API key>"}
POST /api/ocr  {"image": "<base64 JPEG>"} -> {"text": "..."}

The cloud backend forwards the image to Google Vision TEXT_DETECTION; the
tesseract backend reads it locally and needs no key.
'''

import base64
import binascii
import logging
import os

import httpx
from flask import Flask, request, jsonify

from config import (KEY_PREFIX_LENGTH, OCR_BACKEND, OCR_REQUEST_TIMEOUT, OCR_SERVER_HOST,
                    OCR_SERVER_PORT, VISION_API_KEY_ENV, VISION_API_URL)
from errors import RecognitionFailure
from ocr_processor import TesseractRecognizer

logger = logging.getLogger(__name__)

ALL_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE']


def extract_vision_text(data):
    """Full text annotation first, then the first plain text annotation."""
    responses = data.get("responses") or [{}]
    annotation = responses[0] or {}
    full = annotation.get("fullTextAnnotation") or {}
    text = full.get("text")
    if not text:
        annotations = annotation.get("textAnnotations") or []
        text = annotations[0].get("description") if annotations else ""
    return (text or "").strip()


def create_app(backend=None, api_key=None, recognizer=None):
    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max image
    app.config['OCR_BACKEND'] = backend or OCR_BACKEND
    app.config['API_KEY'] = api_key if api_key is not None else os.environ.get(VISION_API_KEY_ENV)
    state = {"recognizer": recognizer}

    def get_recognizer():
        if state["recognizer"] is None:
            state["recognizer"] = TesseractRecognizer()
        return state["recognizer"]

    @app.route('/api/ocr', methods=ALL_METHODS)
    def ocr():
        key = app.config['API_KEY']
        uses_vision = app.config['OCR_BACKEND'] != 'tesseract'

        if not key and (request.method == 'GET' or uses_vision):
            logger.error(f"{VISION_API_KEY_ENV} is not set")
            return f"Missing {VISION_API_KEY_ENV}", 500

        if request.method == 'GET':
            return jsonify({"prefix": key[:KEY_PREFIX_LENGTH]}), 200

        if request.method != 'POST':
            return "Method Not Allowed", 405

        try:
            payload = request.get_json(silent=True) or {}
            image = payload.get("image")
            if not image:
                return "Missing image", 400

            if uses_vision:
                return forward_to_vision(image, key)

            try:
                image_bytes = base64.b64decode(image, validate=True)
            except (binascii.Error, ValueError):
                return "Missing image", 400
            text = get_recognizer().recognize_bytes(image_bytes)
            return jsonify({"text": text}), 200

        except RecognitionFailure as e:
            logger.error(f"Local OCR failed: {e}")
            return jsonify({"error": {"message": str(e)}}), 500
        except Exception as e:
            logger.error(f"OCR failed: {e}")
            return "OCR failed", 500

    return app


def forward_to_vision(image, key):
    body = {
        "requests": [
            {
                "image": {"content": image},
                "features": [{"type": "TEXT_DETECTION"}],
            }
        ]
    }
    response = httpx.post(VISION_API_URL, params={"key": key}, json=body, timeout=OCR_REQUEST_TIMEOUT)
    data = response.json()
    if not response.is_success:
        logger.error(f"Vision API answered {response.status_code}")
        return jsonify(data), response.status_code

    text = extract_vision_text(data)
    logger.info(f"Vision API returned {len(text)} characters")
    return jsonify({"text": text}), 200


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    logger.info(f"Starting OCR proxy on {OCR_SERVER_HOST}:{OCR_SERVER_PORT} with backend '{OCR_BACKEND}'")
    create_app().run(host=OCR_SERVER_HOST, port=OCR_SERVER_PORT)

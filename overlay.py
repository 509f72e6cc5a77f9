import logging

from config import (ACTIVE_LINE_COLOR, EMPLOYEE_LINE_COLOR, OCR_TEXT_COLOR,
                    STATUS_TEXT_COLOR, YOU_LINE_COLOR)
from script_player import Speaker
from transcript_window import EMPTY_VIEW
from utils import apply_adjustments, apply_digital_zoom, blend_flash, draw_text, wrap_text

logger = logging.getLogger(__name__)


class OverlayState:
    """
    Everything drawn on top of the camera frame. The engines only mutate this
    object; compose() turns it into pixels once per displayed frame.
    """

    def __init__(self):
        self.brightness = 1.0
        self.contrast = 1.0
        self.magnification = 1.0
        self.flash_color = "#000"
        self.flash_opacity = 0.0
        self.flash_hidden = True
        self.transcript = EMPTY_VIEW
        self.status = ""
        self.ocr_output = ""

    def set_flash(self, color, opacity):
        self.flash_hidden = False
        self.flash_color = color
        self.flash_opacity = opacity

    def clear_flash(self):
        self.flash_color = "#000"
        self.flash_opacity = 0.0
        self.flash_hidden = True

    def set_magnification(self, scale):
        self.magnification = max(1.0, scale)

    def show_transcript(self, view):
        self.transcript = view

    def set_status(self, message):
        self.status = message or ""
        if self.status:
            logger.info(f"Status: {self.status}")

    def set_ocr_output(self, text):
        self.ocr_output = text.strip() if text and text.strip() else ""

    def compose(self, frame):
        """Render the adjusted, magnified frame with every visible layer."""
        display = apply_adjustments(frame, self.brightness, self.contrast)
        display = apply_digital_zoom(display, self.magnification)
        if not self.flash_hidden:
            display = blend_flash(display, self.flash_color, self.flash_opacity)
        else:
            display = display.copy()
        draw_transcript(display, self.transcript)
        draw_ocr_output(display, self.ocr_output)
        draw_status(display, self.status)
        return display


def draw_transcript(frame, view, line_height=28, max_chars=60):
    if view.hidden or not view.entries:
        return frame
    y = 30
    for entry in view.entries:
        utterance = entry.line
        prefix = "-> " if entry.active else "   "
        if entry.active:
            color = ACTIVE_LINE_COLOR
        elif utterance.speaker is Speaker.YOU:
            color = YOU_LINE_COLOR
        else:
            color = EMPLOYEE_LINE_COLOR
        wrapped = wrap_text(f"{prefix}{utterance.speaker.label} {utterance.text}", max_chars)
        for text in wrapped:
            draw_text(frame, text, (10, y), color, 0.6, 2 if entry.active else 1)
            y += line_height
    return frame


def draw_ocr_output(frame, text, max_lines=8, max_chars=50):
    if not text:
        return frame
    height = frame.shape[0]
    lines = []
    for paragraph in text.splitlines():
        lines.extend(wrap_text(paragraph, max_chars))
    lines = lines[:max_lines]
    y = max(30, height - 60 - 24 * len(lines))
    for line in lines:
        draw_text(frame, line, (10, y), OCR_TEXT_COLOR, 0.6, 1)
        y += 24
    return frame


def draw_status(frame, status):
    if not status:
        return frame
    return draw_text(frame, status[:90], (10, frame.shape[0] - 20), STATUS_TEXT_COLOR, 0.55, 1)

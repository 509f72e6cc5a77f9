"""Unit tests for frame helpers and overlay composition."""

import base64

import cv2
import numpy as np
import pytest

from overlay import OverlayState
from script_player import parse_script
from transcript_window import render
from utils import (apply_adjustments, apply_digital_zoom, blend_flash, cover_fit,
                   encode_jpeg_base64, hex_to_bgr, wrap_text)


@pytest.fixture
def frame():
    return np.full((120, 160, 3), 100, dtype=np.uint8)


class TestColor:
    def test_hex_to_bgr(self):
        assert hex_to_bgr("#fef08a") == (138, 240, 254)
        assert hex_to_bgr("#000") == (0, 0, 0)


class TestAdjustments:
    def test_identity(self, frame):
        assert apply_adjustments(frame, 1.0, 1.0) is frame

    def test_brightness_scales(self, frame):
        assert apply_adjustments(frame, 1.5, 1.0)[0, 0, 0] == 150

    def test_output_is_clipped(self, frame):
        assert apply_adjustments(frame, 4.0, 2.0).max() == 255


class TestDigitalZoom:
    def test_keeps_size(self, frame):
        frame[50:70, 70:90] = 255
        zoomed = apply_digital_zoom(frame, 2.0)
        assert zoomed.shape == frame.shape
        # the bright center square grows
        assert (zoomed == 255).sum() > (frame == 255).sum()

    def test_scale_below_one_is_identity(self, frame):
        assert apply_digital_zoom(frame, 0.5) is frame


class TestCoverFit:
    @pytest.mark.parametrize("size", [(160, 90), (90, 160), (320, 240)])
    def test_fills_target(self, frame, size):
        fitted = cover_fit(frame, *size)
        assert fitted.shape == (size[1], size[0], 3)


class TestFlash:
    def test_zero_opacity_is_identity(self, frame):
        assert blend_flash(frame, "#ffffff", 0) is frame

    def test_blend(self, frame):
        blended = blend_flash(frame, "#ffffff", 0.5)
        assert blended[0, 0, 0] == pytest.approx(178, abs=1)


class TestJpeg:
    def test_round_trip_is_decodable(self, frame):
        data = base64.b64decode(encode_jpeg_base64(frame, 92))
        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape == frame.shape


def test_wrap_text():
    assert wrap_text("one two three four", 9) == ["one two", "three", "four"]
    assert wrap_text("", 10) == []


class TestOverlayCompose:
    def test_compose_draws_every_layer(self, frame):
        overlay = OverlayState()
        overlay.set_flash("#fca5a5", 0.6)
        overlay.show_transcript(render(parse_script("You: a\nEmployee: b"), 0))
        overlay.set_ocr_output("menu")
        overlay.set_status("Ready.")
        display = overlay.compose(frame)
        assert display.shape == frame.shape
        assert not np.array_equal(display, frame)
        assert frame[0, 0, 0] == 100

    def test_cleared_flash_leaves_frame_untouched(self, frame):
        overlay = OverlayState()
        overlay.set_flash("#ffffff", 0.9)
        overlay.clear_flash()
        assert np.array_equal(overlay.compose(frame), frame)

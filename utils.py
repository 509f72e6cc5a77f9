import base64
import cv2
import logging
import numpy as np

logger = logging.getLogger(__name__)


def hex_to_bgr(color):
    """'#fef08a' -> (138, 240, 254)"""
    value = color.lstrip('#')
    if len(value) == 3:
        value = ''.join(c * 2 for c in value)
    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    return (b, g, r)


def apply_adjustments(frame, brightness=1.0, contrast=1.0):
    """
    Brightness and contrast with CSS filter semantics: brightness scales every
    channel, contrast stretches around mid-grey.
    """
    if brightness == 1.0 and contrast == 1.0:
        return frame
    adjusted = frame.astype(np.float32) * brightness
    adjusted = (adjusted - 127.5) * contrast + 127.5
    return np.clip(adjusted, 0, 255).astype(np.uint8)


def apply_digital_zoom(frame, scale):
    """Magnify around the frame center, keeping the output size."""
    scale = max(1.0, float(scale))
    if scale == 1.0:
        return frame
    height, width = frame.shape[:2]
    crop_w = max(1, int(round(width / scale)))
    crop_h = max(1, int(round(height / scale)))
    x1 = (width - crop_w) // 2
    y1 = (height - crop_h) // 2
    cropped = frame[y1:y1 + crop_h, x1:x1 + crop_w]
    return cv2.resize(cropped, (width, height), interpolation=cv2.INTER_LINEAR)


def cover_fit(frame, width, height):
    """
    Scale `frame` to fill width x height and crop the overflow evenly,
    the way the frozen frame is laid over the preview.
    """
    src_h, src_w = frame.shape[:2]
    if src_w == 0 or src_h == 0 or width <= 0 or height <= 0:
        logger.error(f"Invalid dimensions for cover fit: {src_w}x{src_h} -> {width}x{height}")
        return frame

    scale = max(width / src_w, height / src_h)
    draw_w = max(width, int(round(src_w * scale)))
    draw_h = max(height, int(round(src_h * scale)))
    resized = cv2.resize(frame, (draw_w, draw_h), interpolation=cv2.INTER_AREA if scale < 1 else cv2.INTER_CUBIC)
    x1 = (draw_w - width) // 2
    y1 = (draw_h - height) // 2
    return resized[y1:y1 + height, x1:x1 + width].copy()


def blend_flash(frame, color, opacity):
    opacity = min(1.0, max(0.0, float(opacity)))
    if opacity == 0.0:
        return frame
    layer = np.empty_like(frame)
    layer[:] = hex_to_bgr(color)
    return cv2.addWeighted(layer, opacity, frame, 1.0 - opacity, 0)


def encode_jpeg_base64(frame, quality=92):
    ok, buffer = cv2.imencode('.jpg', frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return base64.b64encode(buffer.tobytes()).decode('ascii')


def draw_text(frame, text, position, color, scale=0.6, thickness=1, background=True):
    """
    Draws one line of text, clamped inside the frame, over an optional dark
    backing box so it stays readable on bright frames.
    """
    if frame is None or not text:
        return frame

    height, width = frame.shape[:2]
    x = max(0, min(int(position[0]), width - 1))
    y = max(0, min(int(position[1]), height - 1))

    if background:
        (text_w, text_h), baseline = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, scale, thickness)
        cv2.rectangle(frame, (x - 4, max(0, y - text_h - 6)),
                      (min(width - 1, x + text_w + 4), min(height - 1, y + baseline + 2)), (0, 0, 0), -1)

    cv2.putText(frame, text, (x, y), cv2.FONT_HERSHEY_SIMPLEX, scale, color, thickness, cv2.LINE_AA)
    return frame


def wrap_text(text, max_chars):
    """Greedy word wrap used for overlay panels."""
    lines = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}".strip()
        if len(candidate) > max_chars and current:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines

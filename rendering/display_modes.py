"""
Display modes for image rendering.

Defines how an image is scaled and positioned inside the display area.
Layout is computed as a (target, source) rectangle pair so the painter can
scale and crop in a single drawPixmap call.
"""
from enum import Enum
from typing import Tuple

from PySide6.QtCore import QRectF, QSize


class DisplayMode(Enum):
    """
    Display mode for image rendering.

    Modes:
    - FILL: Crop and scale to fill the area (no letterboxing) - PRIMARY MODE
    - FIT: Scale to fit within the area (may have letterboxing)
    - SHRINK: Only scale down, never upscale (may have letterboxing)
    """
    FILL = "fill"
    FIT = "fit"
    SHRINK = "shrink"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_string(cls, value: str) -> 'DisplayMode':
        """
        Create DisplayMode from string.

        Raises:
            ValueError: If value is not a valid display mode
        """
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Invalid display mode: {value}. "
                             f"Valid modes: {', '.join([m.value for m in cls])}")


def layout_rects(mode: DisplayMode, image_size: QSize, area: QSize) -> Tuple[QRectF, QRectF]:
    """
    Compute where an image lands in ``area``.

    Returns:
        (target, source): target rectangle in area coordinates and the part
        of the image that is drawn into it
    """
    iw, ih = image_size.width(), image_size.height()
    aw, ah = area.width(), area.height()
    full_source = QRectF(0, 0, iw, ih)
    if iw <= 0 or ih <= 0 or aw <= 0 or ah <= 0:
        return QRectF(0, 0, max(aw, 0), max(ah, 0)), full_source

    if mode is DisplayMode.FILL:
        # Cover the whole area and crop the centered excess from the source.
        scale = max(aw / iw, ah / ih)
        src_w, src_h = aw / scale, ah / scale
        source = QRectF((iw - src_w) / 2.0, (ih - src_h) / 2.0, src_w, src_h)
        return QRectF(0, 0, aw, ah), source

    scale = min(aw / iw, ah / ih)
    if mode is DisplayMode.SHRINK:
        scale = min(scale, 1.0)
    w, h = iw * scale, ih * scale
    return QRectF((aw - w) / 2.0, (ah - h) / 2.0, w, h), full_source

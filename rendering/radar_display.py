"""
Radar display widget.

Paints the two buffer layers and the radar reveal: the standby layer is
clipped to a circle that grows from the center to full coverage while a
rotating sweep is drawn above both layers. Both effects are driven by
QVariantAnimation over the reveal duration.
"""
from __future__ import annotations

import math
from typing import Any, List, Optional

from PySide6.QtCore import QEasingCurve, QPointF, QRectF, Qt, QVariantAnimation, Signal
from PySide6.QtGui import (
    QColor,
    QConicalGradient,
    QFont,
    QImage,
    QKeyEvent,
    QPainter,
    QPainterPath,
    QPaintEvent,
    QPen,
    QPixmap,
)
from PySide6.QtWidgets import QWidget

from core.constants.timing import REVEAL_DURATION_DEFAULT_MS
from core.logging.logger import get_logger, is_verbose_logging
from core.logging.tags import TAG_FALLBACK, TAG_RENDER, TAG_TRANSITION
from engine.double_buffer import DoubleBuffer
from engine.update_types import BufferRole
from rendering.display_modes import DisplayMode, layout_rects
from rendering.renderer import Renderer

logger = get_logger(__name__)

PLACEHOLDER_TEXT = "Waiting for image"

_SWEEP_COLOR = QColor(0, 255, 128)
_BACKGROUND = QColor(0, 0, 0)


class RadarDisplayWidget(QWidget):
    """
    Two-layer image surface with the radar reveal effect.

    Layers are stored per buffer slot. Which one is drawn as the base is
    decided at paint time from the shared DoubleBuffer, so the widget never
    keeps its own copy of the role map.

    Signals:
    - exit_requested: Esc or Q pressed
    - reveal_progress: Reveal mask coverage (0.0 to 1.0)
    """

    exit_requested = Signal()
    reveal_progress = Signal(float)

    def __init__(
        self,
        buffer: DoubleBuffer,
        reveal_duration_ms: int = REVEAL_DURATION_DEFAULT_MS,
        display_mode: DisplayMode = DisplayMode.FILL,
        radar_overlay: bool = True,
        parent: Optional[QWidget] = None,
    ):
        super().__init__(parent)
        self._buffer = buffer
        self._display_mode = display_mode
        self._radar_overlay = radar_overlay
        self._reveal_duration_ms = int(reveal_duration_ms)

        self._layers: List[Optional[QPixmap]] = [None, None]
        self._standby_visible = False
        self._reveal_fraction = 0.0
        self._sweep_angle = 0.0
        self._overlay_active = False

        self._reveal_anim = QVariantAnimation(self)
        self._reveal_anim.setStartValue(0.0)
        self._reveal_anim.setEndValue(1.0)
        self._reveal_anim.setEasingCurve(QEasingCurve.Type.InOutQuad)
        self._reveal_anim.valueChanged.connect(self._on_reveal_value)

        self._sweep_anim = QVariantAnimation(self)
        self._sweep_anim.setStartValue(0.0)
        self._sweep_anim.setEndValue(360.0)
        self._sweep_anim.setEasingCurve(QEasingCurve.Type.Linear)
        self._sweep_anim.valueChanged.connect(self._on_sweep_value)

        self.setAttribute(Qt.WidgetAttribute.WA_OpaquePaintEvent, True)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setMinimumSize(320, 180)
        self.setWindowTitle("Radar Image Receiver")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_reveal_duration_ms(self, duration_ms: int) -> None:
        self._reveal_duration_ms = max(1, int(duration_ms))

    def set_radar_overlay(self, enabled: bool) -> None:
        self._radar_overlay = bool(enabled)

    def set_display_mode(self, mode: DisplayMode) -> None:
        self._display_mode = mode
        self.update()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def layer_for(self, role: BufferRole) -> Optional[QPixmap]:
        return self._layers[self._buffer.slot_for(role)]

    @property
    def standby_visible(self) -> bool:
        return self._standby_visible

    @property
    def overlay_active(self) -> bool:
        return self._overlay_active

    @property
    def reveal_fraction(self) -> float:
        return self._reveal_fraction

    @property
    def is_animating(self) -> bool:
        return self._reveal_anim.state() == QVariantAnimation.State.Running

    # ------------------------------------------------------------------
    # Layers and reveal
    # ------------------------------------------------------------------

    def load_layer(self, role: BufferRole, handle: Any) -> None:
        pixmap = self._to_pixmap(handle)
        slot = self._buffer.slot_for(role)
        self._layers[slot] = pixmap
        if role is BufferRole.STANDBY:
            self._reveal_fraction = 0.0
            self._standby_visible = False
        if is_verbose_logging():
            logger.debug("%s Loaded %s layer (slot %d)", TAG_RENDER, role.value, slot)
        self.update()

    def start_reveal(self) -> None:
        duration = self._reveal_duration_ms
        self._reveal_fraction = 0.0
        self._standby_visible = True
        self._overlay_active = self._radar_overlay
        for anim in (self._reveal_anim, self._sweep_anim):
            anim.stop()
            anim.setDuration(duration)
            anim.start()
        logger.debug("%s Radar reveal started (%dms)", TAG_TRANSITION, duration)
        self.update()

    def stop_reveal(self) -> None:
        self._sweep_anim.stop()
        self._reveal_anim.stop()
        self._overlay_active = False
        self._sweep_angle = 0.0
        self.update()

    def hide_standby(self) -> None:
        self._layers[self._buffer.slot_for(BufferRole.STANDBY)] = None
        self._standby_visible = False
        self._reveal_fraction = 0.0
        self.update()

    # ------------------------------------------------------------------
    # Animation callbacks
    # ------------------------------------------------------------------

    def _on_reveal_value(self, value) -> None:
        self._reveal_fraction = float(value)
        self.reveal_progress.emit(self._reveal_fraction)
        self.update()

    def _on_sweep_value(self, value) -> None:
        self._sweep_angle = float(value)

    # ------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------

    @staticmethod
    def _to_pixmap(handle: Any) -> Optional[QPixmap]:
        if isinstance(handle, QPixmap):
            return handle
        if isinstance(handle, QImage):
            return QPixmap.fromImage(handle)
        logger.warning("%s Unsupported image handle %s", TAG_FALLBACK, type(handle).__name__)
        return None

    def _draw_layer(self, painter: QPainter, pixmap: QPixmap) -> None:
        target, source = layout_rects(self._display_mode, pixmap.size(), self.size())
        painter.drawPixmap(target, pixmap, source)

    def _max_radius(self) -> float:
        return math.hypot(self.width(), self.height()) / 2.0

    def paintEvent(self, event: QPaintEvent) -> None:
        painter = QPainter(self)
        try:
            painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, True)
            painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
            painter.fillRect(self.rect(), _BACKGROUND)

            active = self._layers[self._buffer.slot_for(BufferRole.ACTIVE)]
            if active is not None and not active.isNull():
                self._draw_layer(painter, active)
            else:
                self._paint_placeholder(painter)

            standby = self._layers[self._buffer.slot_for(BufferRole.STANDBY)]
            if self._standby_visible and standby is not None and self._reveal_fraction > 0.0:
                center = QPointF(self.width() / 2.0, self.height() / 2.0)
                radius = self._reveal_fraction * self._max_radius()
                path = QPainterPath()
                path.addEllipse(center, radius, radius)
                painter.save()
                painter.setClipPath(path)
                self._draw_layer(painter, standby)
                painter.restore()

            if self._overlay_active:
                self._paint_sweep(painter)
        finally:
            painter.end()

    def _paint_placeholder(self, painter: QPainter) -> None:
        painter.setPen(QColor(200, 200, 200))
        font = QFont(self.font())
        font.setPointSize(max(12, self.height() // 30))
        painter.setFont(font)
        painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, PLACEHOLDER_TEXT)

    def _paint_sweep(self, painter: QPainter) -> None:
        center = QPointF(self.width() / 2.0, self.height() / 2.0)
        radius = self._max_radius()

        gradient = QConicalGradient(center, -self._sweep_angle)
        head = QColor(_SWEEP_COLOR)
        head.setAlpha(110)
        tail = QColor(_SWEEP_COLOR)
        tail.setAlpha(0)
        gradient.setColorAt(0.0, head)
        gradient.setColorAt(0.15, tail)
        gradient.setColorAt(1.0, tail)

        painter.save()
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(gradient)
        painter.drawEllipse(center, radius, radius)

        ring = QColor(_SWEEP_COLOR)
        ring.setAlpha(180)
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.setPen(QPen(ring, 2.0))
        reveal_radius = self._reveal_fraction * radius
        if reveal_radius > 1.0:
            painter.drawEllipse(QRectF(center.x() - reveal_radius, center.y() - reveal_radius,
                                       reveal_radius * 2.0, reveal_radius * 2.0))
        painter.restore()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def keyPressEvent(self, event: QKeyEvent) -> None:
        if event.key() in (Qt.Key.Key_Escape, Qt.Key.Key_Q):
            logger.info("Exit key pressed (%s), requesting exit", event.key())
            self.exit_requested.emit()
            return
        super().keyPressEvent(event)


class RadarRenderer(Renderer):
    """Renderer backed by a RadarDisplayWidget."""

    def __init__(self, widget: RadarDisplayWidget):
        self._widget = widget

    @property
    def widget(self) -> RadarDisplayWidget:
        return self._widget

    def show(self, role: BufferRole, handle: Any) -> None:
        self._widget.load_layer(role, handle)

    def start_transition_effect(self) -> None:
        self._widget.start_reveal()

    def end_transition_effect(self) -> None:
        self._widget.stop_reveal()

    def reset_standby(self) -> None:
        self._widget.hide_standby()

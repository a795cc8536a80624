"""
Intensity Control - Pointer Surfaces
Qt widgets that deliver raw pointer events to the gesture controller.

Qt grabs the mouse for the widget that received the press until release, which
gives each drag exclusive capture even when the pointer leaves the widget.
"""

import math

from PyQt6.QtCore import QPointF, QRectF, Qt
from PyQt6.QtGui import QBrush, QColor, QPainter, QPen
from PyQt6.QtWidgets import QWidget

from config import ViewMode
from geometry import Rect, dial_angle_for_value
from gesture_controller import GestureSessionController
from tick_feedback import PulseFrame

MOUSE_POINTER_ID = 0


def _round_pen(color: QColor, width: int) -> QPen:
    pen = QPen(color)
    pen.setWidth(width)
    pen.setCapStyle(Qt.PenCapStyle.RoundCap)
    return pen


class PointerSurface(QWidget):
    """Base surface: forwards press/move/release for the left button."""

    mode = ViewMode.DIAL

    def __init__(self, controller: GestureSessionController, parent=None):
        super().__init__(parent)
        self.controller = controller
        self._value = controller.state.intensity
        self.setCursor(Qt.CursorShape.PointingHandCursor)
        controller.bind_surface(self.mode, self.bounds)

    def bounds(self) -> Rect:
        return Rect(0.0, 0.0, float(self.width()), float(self.height()))

    def set_value(self, value: int):
        self._value = value
        self.update()

    def mousePressEvent(self, event):
        if event.button() != Qt.MouseButton.LeftButton:
            super().mousePressEvent(event)
            return
        pos = event.position()
        self.controller.pointer_down(self.mode, MOUSE_POINTER_ID, pos.x(), pos.y())
        event.accept()

    def mouseMoveEvent(self, event):
        pos = event.position()
        self.controller.pointer_move(MOUSE_POINTER_ID, pos.x(), pos.y())

    def mouseReleaseEvent(self, event):
        if event.button() == Qt.MouseButton.LeftButton:
            self.controller.pointer_up(MOUSE_POINTER_ID)


class DialSurface(PointerSurface):
    """Radial surface: 300 degree arc with the dead gap at the bottom"""

    mode = ViewMode.DIAL

    def __init__(self, controller: GestureSessionController, parent=None):
        super().__init__(controller, parent)
        self.setMinimumSize(240, 240)

    def paintEvent(self, event):
        dial = self.controller.config.dial
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)

        side = min(self.width(), self.height()) - 24
        rect = QRectF((self.width() - side) / 2, (self.height() - side) / 2, side, side)

        # Qt angles run counter-clockwise; screen angles here run clockwise
        start_deg = dial_angle_for_value(0, dial.arc_span_deg, dial.angle_offset_deg)
        start_angle = int(-start_deg * 16)

        painter.setPen(_round_pen(QColor(0x20, 0x20, 0x20), 14))
        painter.drawArc(rect, start_angle, int(-dial.arc_span_deg * 16))

        if self._value > 0:
            painter.setPen(_round_pen(QColor(0xff, 0xff, 0xff), 8))
            painter.drawArc(rect, start_angle, int(-dial.arc_span_deg * self._value / 100.0 * 16))

        # Value marker
        angle = math.radians(dial_angle_for_value(self._value, dial.arc_span_deg, dial.angle_offset_deg))
        radius = side / 2
        center = rect.center()
        marker = QPointF(center.x() + math.cos(angle) * radius, center.y() + math.sin(angle) * radius)
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(QColor(0x56, 0x5d, 0x7f)))
        painter.drawEllipse(marker, 10, 10)
        painter.end()


class TrackSurface(PointerSurface):
    """Vertical track: top is 100%, bottom is 0%"""

    mode = ViewMode.TRACK

    def __init__(self, controller: GestureSessionController, parent=None):
        super().__init__(controller, parent)
        self.setMinimumSize(80, 240)

    def bounds(self) -> Rect:
        margin = float(self.controller.config.track.margin_px)
        return Rect(0.0, margin, float(self.width()), max(1.0, self.height() - 2 * margin))

    def paintEvent(self, event):
        track = self.bounds()
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)

        x = self.width() / 2 - 20
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(QColor(0x20, 0x20, 0x20)))
        painter.drawRoundedRect(QRectF(x, track.top, 40, track.height), 8, 8)

        fill_h = track.height * self._value / 100.0
        fill_top = track.top + track.height - fill_h
        if self._value > 0:
            painter.setBrush(QBrush(QColor(0xff, 0xff, 0xff)))
            painter.drawRoundedRect(QRectF(x, fill_top, 40, fill_h), 8, 8)

        painter.setBrush(QBrush(QColor(0x56, 0x5d, 0x7f)))
        painter.drawEllipse(QPointF(self.width() / 2, fill_top), 14, 14)
        painter.end()


class PulseIndicator(QWidget):
    """Fixed dot that spikes on every tick"""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setFixedSize(36, 36)
        self._frame = PulseFrame(1.0, 0.1, False)

    def set_frame(self, frame: PulseFrame):
        self._frame = frame
        self.update()

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.setOpacity(max(0.0, min(1.0, self._frame.opacity)))
        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(QBrush(QColor(0xff, 0xff, 0xff)))
        radius = 6 * self._frame.scale
        painter.drawEllipse(QPointF(self.width() / 2, self.height() / 2), radius, radius)
        painter.end()

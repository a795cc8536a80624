"""
Intensity Control - Main Window
Qt host for the dial/track surfaces, the pulse indicator and bridge status.
"""

from typing import Optional

from PyQt6.QtCore import QObject, Qt, pyqtSignal
from PyQt6.QtWidgets import (
    QHBoxLayout, QLabel, QMainWindow, QPushButton, QStackedWidget, QVBoxLayout, QWidget,
)

from config import ViewMode
from hardware_bridge import HardwareTelemetry
from runtime_wiring import Runtime, shutdown_runtime
from surfaces import DialSurface, PulseIndicator, TrackSurface
from tick_feedback import PulseFrame


class SignalBridge(QObject):
    """Bridge for thread-safe signal emission"""
    status_changed = pyqtSignal(str, bool)
    telemetry_changed = pyqtSignal(object)
    pulse_changed = pyqtSignal(object)


class IntensityControlWindow(QMainWindow):
    def __init__(self, runtime: Runtime, signals: SignalBridge, parent=None):
        super().__init__(parent)
        self.runtime = runtime
        self.signals = signals
        self._init_error: Optional[str] = None

        self.setWindowTitle("Intensity Control")
        self.setStyleSheet("background: #161616; color: #ddd;")

        controller = runtime.controller
        self.dial_surface = DialSurface(controller)
        self.track_surface = TrackSurface(controller)

        self.stack = QStackedWidget()
        self.stack.addWidget(self.dial_surface)
        self.stack.addWidget(self.track_surface)

        self.value_label = QLabel()
        self.value_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.value_label.setStyleSheet("font-size: 28px; color: #fff;")

        self.dial_button = QPushButton("DIAL")
        self.track_button = QPushButton("SLIDER")
        for button in (self.dial_button, self.track_button):
            button.setCheckable(True)
            button.setFocusPolicy(Qt.FocusPolicy.NoFocus)
        self.dial_button.clicked.connect(lambda: controller.set_mode(ViewMode.DIAL))
        self.track_button.clicked.connect(lambda: controller.set_mode(ViewMode.TRACK))

        self.pulse = PulseIndicator()

        self.status_label = QLabel("Connecting...")
        self.status_label.setWordWrap(True)
        self.telemetry_label = QLabel("")
        self.telemetry_label.setStyleSheet("color: #888;")

        switcher = QHBoxLayout()
        switcher.addWidget(self.dial_button)
        switcher.addWidget(self.pulse)
        switcher.addWidget(self.track_button)

        layout = QVBoxLayout()
        layout.addWidget(self.value_label)
        layout.addWidget(self.stack, stretch=1)
        layout.addLayout(switcher)
        layout.addWidget(self.status_label)
        layout.addWidget(self.telemetry_label)

        central = QWidget()
        central.setLayout(layout)
        self.setCentralWidget(central)

        signals.status_changed.connect(self._on_status)
        signals.telemetry_changed.connect(self._on_telemetry)
        signals.pulse_changed.connect(self.pulse.set_frame)

        runtime.state.add_intensity_listener(self._on_intensity)
        runtime.state.add_mode_listener(self._on_mode)

        self._on_intensity(runtime.state.intensity)
        self._on_mode(runtime.state.mode)

    def _on_intensity(self, value: int):
        self.value_label.setText(f"{value}%  ·  step {self.runtime.state.active_step}/5")
        self.dial_surface.set_value(value)
        self.track_surface.set_value(value)

    def _on_mode(self, mode: ViewMode):
        self.stack.setCurrentWidget(self.dial_surface if mode == ViewMode.DIAL else self.track_surface)
        self.dial_button.setChecked(mode == ViewMode.DIAL)
        self.track_button.setChecked(mode == ViewMode.TRACK)

    def _on_status(self, message: str, is_error: bool):
        if is_error and self.runtime.adapter.init_error == message:
            self._init_error = message
        text = message if self._init_error is None or self._init_error == message \
            else f"{self._init_error}\n{message}"
        self.status_label.setText(text)
        self.status_label.setStyleSheet("color: #f66;" if is_error else "color: #6c6;")

    def _on_telemetry(self, telemetry: HardwareTelemetry):
        cams = ", ".join(f"{cam.id}(m{cam.max_level})" for cam in telemetry.cameras)
        self.telemetry_label.setText(
            f"{telemetry.manufacturer} {telemetry.model} | {telemetry.torch_status} | {cams}"
        )

    def keyPressEvent(self, event):
        key = event.key()
        if key in (Qt.Key.Key_Up, Qt.Key.Key_Right):
            self.runtime.controller.set_value(self.runtime.state.intensity + 1)
        elif key in (Qt.Key.Key_Down, Qt.Key.Key_Left):
            self.runtime.controller.set_value(self.runtime.state.intensity - 1)
        elif key == Qt.Key.Key_Tab:
            mode = ViewMode.TRACK if self.runtime.state.mode == ViewMode.DIAL else ViewMode.DIAL
            self.runtime.controller.set_mode(mode)
        else:
            super().keyPressEvent(event)

    def closeEvent(self, event):
        shutdown_runtime(self.runtime)
        super().closeEvent(event)


def pulse_frame_forwarder(signals: SignalBridge):
    """Visual pulse callback that hops onto the GUI thread."""
    def forward(frame: PulseFrame):
        signals.pulse_changed.emit(frame)
    return forward

"""
Intensity Control - Intensity State
Single source of truth for the current intensity and view mode.
"""

import threading
from typing import Callable, List

from config import ViewMode
from geometry import active_step, clamp_intensity
from logging_utils import log_event

IntensityListener = Callable[[int], None]
ModeListener = Callable[[ViewMode], None]


class IntensityState:
    """
    Process-lifetime application state.

    Every ``set_intensity`` call notifies the intensity listeners, even when the
    value did not change: debouncing is the listeners' decision, not the state's.
    """

    def __init__(self, intensity: int = 0, mode: ViewMode = ViewMode.DIAL):
        self._intensity = clamp_intensity(intensity)
        self._mode = ViewMode(mode)
        self._intensity_listeners: List[IntensityListener] = []
        self._mode_listeners: List[ModeListener] = []
        self._lock = threading.Lock()
        self.write_count = 0

    @property
    def intensity(self) -> int:
        return self._intensity

    @property
    def fraction(self) -> float:
        """Intensity as the 0..1 fraction sent to hardware."""
        return self._intensity / 100.0

    @property
    def mode(self) -> ViewMode:
        return self._mode

    @property
    def active_step(self) -> int:
        return active_step(self._intensity)

    def add_intensity_listener(self, listener: IntensityListener) -> None:
        self._intensity_listeners.append(listener)

    def add_mode_listener(self, listener: ModeListener) -> None:
        self._mode_listeners.append(listener)

    def set_intensity(self, value) -> int:
        """Clamp, store and broadcast a new intensity. Returns the stored value."""
        value = clamp_intensity(value)
        with self._lock:
            self._intensity = value
            self.write_count += 1
        for listener in list(self._intensity_listeners):
            try:
                listener(value)
            except Exception as e:
                log_event("ERROR", "State", "Intensity listener failed", listener=getattr(listener, '__qualname__', listener), error=e)
        return value

    def set_mode(self, mode: ViewMode) -> None:
        mode = ViewMode(mode)
        if mode == self._mode:
            return
        self._mode = mode
        log_event("INFO", "State", "View mode changed", mode=mode.name, intensity=self._intensity)
        for listener in list(self._mode_listeners):
            try:
                listener(mode)
            except Exception as e:
                log_event("ERROR", "State", "Mode listener failed", error=e)

"""
Intensity Control - Gesture Session Controller
Drag lifecycle across the dial and track surfaces.

States: Idle -> Dragging(surface) on pointer-down over the bound surface,
Dragging -> Dragging on every move, Dragging -> Idle on release anywhere.
The bound surface is derived from the ViewMode; there is only one at a time.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from config import Config, ViewMode
from geometry import Rect, map_dial_in_rect, map_track_in_rect
from intensity_state import IntensityState
from logging_utils import log_event

BoundsProvider = Callable[[], Rect]


@dataclass
class GestureSession:
    """One drag: the surface, the pointer that owns it and the bounds snapshot."""
    surface: ViewMode
    pointer_id: int
    bounds: Rect
    move_count: int = 0


class GestureSessionController:
    def __init__(self, config: Config, state: IntensityState):
        self.config = config
        self.state = state
        self._bounds_providers: Dict[ViewMode, BoundsProvider] = {}
        self.session: Optional[GestureSession] = None

    @property
    def is_dragging(self) -> bool:
        return self.session is not None

    def bind_surface(self, surface: ViewMode, bounds_provider: BoundsProvider) -> None:
        """Register how to read a surface's bounding geometry."""
        self._bounds_providers[ViewMode(surface)] = bounds_provider

    def map_point(self, surface: ViewMode, x: float, y: float, bounds: Rect) -> int:
        if surface == ViewMode.DIAL:
            return map_dial_in_rect(
                x, y, bounds,
                self.config.dial.arc_span_deg,
                self.config.dial.angle_offset_deg,
            )
        return map_track_in_rect(y, bounds)

    def pointer_down(self, surface: ViewMode, pointer_id: int, x: float, y: float) -> bool:
        """Acquire a pointer over a surface. Returns True when a session opened."""
        surface = ViewMode(surface)
        if self.session is not None:
            log_event("DEBUG", "Gesture", "Ignoring extra pointer while dragging",
                      pointer=pointer_id, owner=self.session.pointer_id)
            return False
        if surface != self.state.mode:
            log_event("DEBUG", "Gesture", "Ignoring pointer on inactive surface", surface=surface.name)
            return False
        provider = self._bounds_providers.get(surface)
        if provider is None:
            log_event("WARN", "Gesture", "No bounds provider bound", surface=surface.name)
            return False

        self.session = GestureSession(surface=surface, pointer_id=pointer_id, bounds=provider())
        log_event("DEBUG", "Gesture", "Drag started", surface=surface.name, pointer=pointer_id)
        # A tap sets the value without any motion
        self._apply(x, y)
        return True

    def pointer_move(self, pointer_id: int, x: float, y: float) -> Optional[int]:
        """Route a move through the active mapper. Returns the written value, if any."""
        session = self.session
        if session is None or pointer_id != session.pointer_id:
            return None
        session.move_count += 1
        if self.config.gesture.resample_bounds:
            session.bounds = self._bounds_providers[session.surface]()
        return self._apply(x, y)

    def pointer_up(self, pointer_id: int) -> bool:
        """Release the session regardless of where the pointer is."""
        session = self.session
        if session is None or pointer_id != session.pointer_id:
            return False
        self.session = None
        log_event("DEBUG", "Gesture", "Drag ended", surface=session.surface.name,
                  moves=session.move_count, intensity=self.state.intensity)
        return True

    def cancel(self) -> None:
        if self.session is not None:
            log_event("DEBUG", "Gesture", "Drag cancelled", surface=self.session.surface.name)
        self.session = None

    def set_mode(self, mode: ViewMode) -> None:
        """Switch the bound surface. Any drag on the old surface ends; intensity is kept."""
        mode = ViewMode(mode)
        if self.session is not None and self.session.surface != mode:
            self.cancel()
        self.state.set_mode(mode)

    def set_value(self, value) -> int:
        """Direct value input (keyboard, accessibility slider) through the same write path."""
        return self.state.set_intensity(value)

    def _apply(self, x: float, y: float) -> int:
        session = self.session
        value = self.map_point(session.surface, x, y, session.bounds)
        return self.state.set_intensity(value)

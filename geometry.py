"""
Intensity Control - Geometry Mappers
Pure functions converting pointer coordinates into a quantized intensity (0-100).

Screen coordinates throughout: x grows right, y grows down.
"""

import math
from dataclasses import dataclass

INTENSITY_MIN = 0
INTENSITY_MAX = 100


@dataclass(frozen=True)
class Rect:
    """Surface bounding geometry snapshot"""
    left: float
    top: float
    width: float
    height: float

    @property
    def center_x(self) -> float:
        return self.left + self.width / 2

    @property
    def center_y(self) -> float:
        return self.top + self.height / 2


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves away from the lower neighbour (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def clamp_intensity(value) -> int:
    """Coerce any numeric input into a valid IntensityValue.

    NaN maps to 0; infinities and out-of-range values clamp to the bounds.
    """
    try:
        value = float(value)
    except (TypeError, ValueError):
        return INTENSITY_MIN
    if math.isnan(value):
        return INTENSITY_MIN
    value = max(float(INTENSITY_MIN), min(float(INTENSITY_MAX), value))
    return max(INTENSITY_MIN, min(INTENSITY_MAX, round_half_up(value)))


def normalize_dial_angle(x: float, y: float, center_x: float, center_y: float,
                         angle_offset_deg: float = 240.0) -> float:
    """Angle of the pointer around the center, rotated so 0 is the start of the arc. [0, 360)"""
    angle = math.degrees(math.atan2(y - center_y, x - center_x))
    return (angle + angle_offset_deg) % 360.0


def snap_dead_gap(normalized: float, arc_span_deg: float = 300.0) -> float:
    """Clamp an angle that fell into the dead gap onto the nearer arc endpoint.

    The threshold is the fixed midpoint of the gap: angles below it belong to the
    end of the arc, angles at or above it wrap back to the start.
    """
    if normalized <= arc_span_deg:
        return normalized
    threshold = arc_span_deg + (360.0 - arc_span_deg) / 2.0
    return arc_span_deg if normalized < threshold else 0.0


def map_dial(x: float, y: float, center_x: float, center_y: float,
             arc_span_deg: float = 300.0, angle_offset_deg: float = 240.0) -> int:
    """Map a pointer position on the dial to an intensity value."""
    normalized = normalize_dial_angle(x, y, center_x, center_y, angle_offset_deg)
    normalized = snap_dead_gap(normalized, arc_span_deg)
    return clamp_intensity(normalized / arc_span_deg * 100.0)


def map_dial_in_rect(x: float, y: float, bounds: Rect,
                     arc_span_deg: float = 300.0, angle_offset_deg: float = 240.0) -> int:
    return map_dial(x, y, bounds.center_x, bounds.center_y, arc_span_deg, angle_offset_deg)


def dial_angle_for_value(value: int, arc_span_deg: float = 300.0,
                         angle_offset_deg: float = 240.0) -> float:
    """Screen angle (degrees, atan2 convention) at which the dial reads ``value``."""
    normalized = clamp_intensity(value) / 100.0 * arc_span_deg
    return (normalized - angle_offset_deg) % 360.0


def map_track(y: float, top: float, height: float) -> int:
    """Map a pointer Y on the track to intensity. Top of track is 100, bottom is 0."""
    if height <= 0:
        return INTENSITY_MAX if y < top else INTENSITY_MIN
    raw = 100.0 - (y - top) / height * 100.0
    return clamp_intensity(raw)


def map_track_in_rect(y: float, bounds: Rect) -> int:
    return map_track(y, bounds.top, bounds.height)


def active_step(value: int, steps: int = 5) -> int:
    """Level indicator (1..steps) for an intensity value; 0 still lights the first step."""
    size = INTENSITY_MAX / steps
    level = math.ceil(clamp_intensity(value) / size)
    return level if level > 0 else 1

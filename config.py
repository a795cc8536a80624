# Intensity Control Configuration
# All default values and constants

from dataclasses import dataclass, field, fields, is_dataclass
from enum import IntEnum

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1


class ViewMode(IntEnum):
    """Which gesture surface is bound to the controller"""
    DIAL = 1
    TRACK = 2


@dataclass
class DialConfig:
    """Radial surface geometry"""
    arc_span_deg: float = 300.0       # Active arc width; the rest of the circle is the dead gap
    angle_offset_deg: float = 240.0   # Added to atan2 angle so the dead gap sits at the bottom


@dataclass
class TrackConfig:
    """Linear surface geometry"""
    margin_px: int = 16               # Inset of the track inside its widget (top and bottom)


@dataclass
class GestureConfig:
    """Drag session behaviour"""
    resample_bounds: bool = False     # Re-query surface bounds on every move instead of caching at acquire


@dataclass
class FeedbackConfig:
    """Tick feedback channels and click synthesis"""
    audio_enabled: bool = True
    haptic_enabled: bool = True
    visual_enabled: bool = True
    include_thud: bool = True         # Second (60 Hz square) layer of the click
    sample_rate: int = 44100
    filter_cutoff_hz: float = 800.0   # Shared low-pass "enclosure"
    filter_order: int = 2
    master_gain: float = 1.0          # Applied after the filter (0.0-1.0)
    device_index: int | None = None   # Output device - None means system default
    pulse_reset_ms: int = 80          # Visual pulse hold time
    pulse_scale: float = 2.0
    pulse_opacity: float = 1.0
    rest_scale: float = 1.0
    rest_opacity: float = 0.1


@dataclass
class BridgeConfig:
    """Hardware actuator bridge"""
    backend: str = "simulated"        # "simulated" or "tcp"
    host: str = "127.0.0.1"
    port: int = 8765
    connect_timeout_ms: int = 5000
    request_timeout_ms: int = 4000
    poll_interval_ms: int = 2000      # Telemetry refresh cadence
    max_workers: int = 4              # Concurrent in-flight bridge calls
    camera_id: str = "0"              # Default target when no override is given
    use_pwm: bool = False
    force_level: int | None = None
    burst: bool | None = None


@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for config files
    dial: DialConfig = field(default_factory=DialConfig)
    track: TrackConfig = field(default_factory=TrackConfig)
    gesture: GestureConfig = field(default_factory=GestureConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)

    default_mode: ViewMode = ViewMode.DIAL
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def _coerce_field(current, value):
    """Convert a JSON value to the type of the field it lands on.

    None passes through untouched (migrate_config restores defaults), and fields
    whose default is None accept any value.
    """
    if value is None or current is None:
        return value
    if isinstance(current, IntEnum):
        if isinstance(value, str):
            return type(current)[value.upper()]
        return type(current)(value)
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise TypeError(f"expected true/false, got {type(value).__name__}")
        return value
    if isinstance(current, (int, float, str)):
        return type(current)(value)
    return value


def apply_dict_to_dataclass(target, data) -> None:
    """Overlay a parsed JSON dict onto a config section, recursing into sub-sections.

    Keys that are not fields of the section are skipped. A value that cannot be
    converted to its field's type is logged and the field keeps its current value.
    """
    if not isinstance(data, dict) or not is_dataclass(target):
        return

    known = {f.name for f in fields(target)}
    for key, value in data.items():
        if key not in known:
            continue

        current = getattr(target, key)
        if is_dataclass(current):
            if isinstance(value, dict):
                apply_dict_to_dataclass(current, value)
            else:
                log_event("WARN", "Config", "Section is not an object, keeping defaults", section=key)
            continue

        try:
            setattr(target, key, _coerce_field(current, value))
        except (KeyError, TypeError, ValueError):
            log_event("WARN", "Config", "Invalid value, keeping default",
                      key=key, value=repr(value), expected=type(current).__name__)


def _clamped_float(value, default: float, low: float, high: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = default
    return max(low, min(high, value))


def _parse_version(loaded_version) -> int:
    try:
        return int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        return 0


def _restore_missing(config: Config) -> list:
    """Put defaults back into fields a file left null. Returns the restored keys."""
    defaults = Config()
    restored = []
    for section_name in ("dial", "track", "gesture", "feedback", "bridge"):
        section = getattr(config, section_name)
        for key, default_value in vars(getattr(defaults, section_name)).items():
            if default_value is None:
                continue  # Optional fields legitimately hold None
            if getattr(section, key, None) is None:
                setattr(section, key, default_value)
                restored.append(f"{section_name}.{key}")
    if config.log_level is None:
        config.log_level = defaults.log_level
        restored.append("log_level")
    return restored


def migrate_config(config: Config, loaded_version) -> None:
    """Bring a loaded config up to CURRENT_CONFIG_VERSION.

    Files without a version predate versioning and are treated as version 0.
    Files from a newer build are loaded as-is on a best-effort basis. Null
    fields are restored and numeric ranges clamped for every version.
    """
    version = _parse_version(loaded_version)
    if version > CURRENT_CONFIG_VERSION:
        log_event("WARN", "Config", "Config written by a newer version, unknown settings ignored",
                  file_version=version, supported=CURRENT_CONFIG_VERSION)

    restored = _restore_missing(config)
    if version < CURRENT_CONFIG_VERSION:
        log_event("INFO", "Config", "Migrating config", from_version=version,
                  to_version=CURRENT_CONFIG_VERSION, restored=len(restored))
    elif restored:
        log_event("WARN", "Config", "Null settings replaced with defaults", keys=",".join(restored))

    config.dial.arc_span_deg = _clamped_float(config.dial.arc_span_deg, 300.0, 1.0, 359.0)
    config.dial.angle_offset_deg = _clamped_float(config.dial.angle_offset_deg, 240.0, -360.0, 360.0)
    config.feedback.filter_cutoff_hz = _clamped_float(
        config.feedback.filter_cutoff_hz, 800.0, 20.0, config.feedback.sample_rate * 0.45
    )
    config.feedback.master_gain = _clamped_float(config.feedback.master_gain, 1.0, 0.0, 1.0)
    config.bridge.poll_interval_ms = max(100, int(config.bridge.poll_interval_ms))
    config.bridge.max_workers = max(1, int(config.bridge.max_workers))
    config.bridge.camera_id = str(config.bridge.camera_id)

    config.version = CURRENT_CONFIG_VERSION


# Default config instance
DEFAULT_CONFIG = Config()

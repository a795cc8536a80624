"""
Intensity Control - Tick Feedback Engine
Fires haptic, audio and visual feedback once per integer-level crossing.
"""

import math
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from click_synth import ClickPlayer, click_layers, render_click
from config import FeedbackConfig
from logging_utils import log_event

Scheduler = Callable[[float, Callable[[], None]], None]


def thread_timer_scheduler(delay_s: float, fn: Callable[[], None]) -> None:
    """Run fn once after delay_s on a daemon timer thread."""
    timer = threading.Timer(delay_s, fn)
    timer.daemon = True
    timer.start()


@dataclass
class TickState:
    """Last integer floor for which feedback already fired (-1 = never)"""
    last_floor: int = -1


class Haptics:
    """Light impact pulse. Fire-and-forget; without an emitter it only logs."""

    def __init__(self, emit: Optional[Callable[[str], None]] = None, enabled: bool = True):
        self.emit = emit
        self.enabled = enabled
        self.pulse_count = 0

    def light_impact(self) -> None:
        if not self.enabled:
            return
        self.pulse_count += 1
        if self.emit is None:
            log_event("DEBUG", "Haptics", "Light impact")
            return
        self.emit("LIGHT")


@dataclass(frozen=True)
class PulseFrame:
    scale: float
    opacity: float
    active: bool


class VisualPulse:
    """
    Scale/opacity spike on a fixed indicator, released after a fixed hold time.

    Each pulse schedules its own reset. A reset only applies if no newer pulse
    started since, so the last pulse always owns the release.
    """

    def __init__(self, config: FeedbackConfig,
                 on_change: Optional[Callable[[PulseFrame], None]] = None,
                 scheduler: Scheduler = thread_timer_scheduler):
        self.config = config
        self.on_change = on_change
        self.scheduler = scheduler
        self._lock = threading.Lock()
        self._generation = 0
        self.frame = PulseFrame(config.rest_scale, config.rest_opacity, False)

    def pulse(self) -> None:
        with self._lock:
            self._generation += 1
            generation = self._generation
            self.frame = PulseFrame(self.config.pulse_scale, self.config.pulse_opacity, True)
            frame = self.frame
        self._notify(frame)
        self.scheduler(self.config.pulse_reset_ms / 1000.0, lambda: self._release(generation))

    def _release(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self.frame = PulseFrame(self.config.rest_scale, self.config.rest_opacity, False)
            frame = self.frame
        self._notify(frame)

    def _notify(self, frame: PulseFrame) -> None:
        if self.on_change is not None:
            self.on_change(frame)


class TickFeedbackEngine:
    """
    Debounced multi-channel feedback.

    ``on_intensity`` is registered as an IntensityState listener. It compares
    floor(value) to the last fired floor; only a different floor fires. Channels
    are isolated from each other: one failing is logged and the others still fire.
    """

    def __init__(self, config: FeedbackConfig,
                 haptics: Optional[Haptics] = None,
                 visual: Optional[VisualPulse] = None,
                 player: Optional[ClickPlayer] = None):
        self.config = config
        self.haptics = haptics or Haptics(enabled=config.haptic_enabled)
        self.visual = visual or VisualPulse(config)
        self.player = player or ClickPlayer(config.sample_rate, config.device_index)
        self.tick_state = TickState()
        self.fire_count = 0
        self._click: Optional[np.ndarray] = None

    @property
    def include_thud(self) -> bool:
        return self.config.include_thud

    def set_include_thud(self, enabled: bool) -> None:
        """Switch click profile; the cached click is re-rendered on next use."""
        self.config.include_thud = enabled
        self._click = None
        log_event("INFO", "Feedback", "Click profile changed", thud=enabled)

    def click_samples(self) -> np.ndarray:
        if self._click is None:
            self._click = render_click(
                click_layers(self.config.include_thud),
                self.config.sample_rate,
                self.config.filter_cutoff_hz,
                self.config.filter_order,
                self.config.master_gain,
            )
        return self._click

    def on_intensity(self, value) -> bool:
        """Handle an intensity write. Returns True when feedback fired."""
        current_floor = math.floor(value)
        if current_floor == self.tick_state.last_floor:
            return False
        self.tick_state.last_floor = current_floor
        self.fire_count += 1

        if self.config.haptic_enabled:
            self._run_channel("haptic", self.haptics.light_impact)
        if self.config.audio_enabled:
            self._run_channel("audio", self._play_click)
        if self.config.visual_enabled:
            self._run_channel("visual", self.visual.pulse)
        return True

    def _play_click(self) -> None:
        self.player.play(self.click_samples())

    def _run_channel(self, name: str, action: Callable[[], None]) -> None:
        try:
            action()
        except Exception as e:
            log_event("WARN", "Feedback", "Feedback channel failed", channel=name, error=e)

    def close(self) -> None:
        self.player.close()

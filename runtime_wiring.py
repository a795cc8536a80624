from dataclasses import dataclass
from typing import Callable, Optional

from bridge_client import TcpActuatorBridge
from config import Config
from gesture_controller import GestureSessionController
from hardware_bridge import ActuatorBridge, HardwareBridgeAdapter, HardwareTelemetry
from intensity_state import IntensityState
from logging_utils import log_event
from simulated_bridge import SimulatedTorchBridge
from tick_feedback import Haptics, PulseFrame, TickFeedbackEngine, VisualPulse


@dataclass
class Runtime:
    """The wired object graph behind the control surface."""
    config: Config
    state: IntensityState
    feedback: TickFeedbackEngine
    adapter: HardwareBridgeAdapter
    controller: GestureSessionController


def create_bridge(config: Config) -> ActuatorBridge:
    """Instantiate the configured bridge backend."""
    backend = (config.bridge.backend or "simulated").lower()
    if backend == "tcp":
        return TcpActuatorBridge(config.bridge)
    if backend != "simulated":
        log_event("WARN", "Runtime", "Unknown bridge backend, using simulated", backend=backend)
    return SimulatedTorchBridge()


def build_runtime(
    config: Config,
    *,
    bridge: Optional[ActuatorBridge] = None,
    status_callback: Optional[Callable[[str, bool], None]] = None,
    telemetry_callback: Optional[Callable[[HardwareTelemetry], None]] = None,
    pulse_callback: Optional[Callable[[PulseFrame], None]] = None,
    haptic_emitter: Optional[Callable[[str], None]] = None,
    feedback: Optional[TickFeedbackEngine] = None,
) -> Runtime:
    """Create state, feedback, adapter and controller and connect the listeners.

    Listener order is feedback first, then hardware dispatch, for every write.
    """
    state = IntensityState(intensity=0, mode=config.default_mode)

    if feedback is None:
        feedback = TickFeedbackEngine(
            config.feedback,
            haptics=Haptics(emit=haptic_emitter, enabled=config.feedback.haptic_enabled),
            visual=VisualPulse(config.feedback, on_change=pulse_callback),
        )

    adapter = HardwareBridgeAdapter(
        config.bridge,
        bridge if bridge is not None else create_bridge(config),
        status_callback=status_callback,
        telemetry_callback=telemetry_callback,
    )

    state.add_intensity_listener(feedback.on_intensity)
    state.add_intensity_listener(adapter.on_intensity)

    controller = GestureSessionController(config, state)
    return Runtime(config=config, state=state, feedback=feedback, adapter=adapter, controller=controller)


def shutdown_runtime(runtime: Runtime) -> None:
    """Close the drag, stop the bridge adapter and release the audio device."""
    runtime.controller.cancel()
    runtime.adapter.stop()
    runtime.feedback.close()
    log_event("INFO", "Runtime", "Shutdown complete",
              ticks=runtime.feedback.fire_count, commands=runtime.adapter.dispatch_count)

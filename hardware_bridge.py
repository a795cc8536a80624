"""
Intensity Control - Hardware Bridge Adapter
Turns intensity writes into actuator commands and keeps a polled telemetry view.

Commands are fire-and-forget on a thread pool. Completions may arrive in any
order; the adapter keeps whatever resolved last as the latest outcome. Every
failure is caught at the async boundary and converted into outcome/status
fields, nothing is raised back to the caller.
"""

import itertools
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from config import BridgeConfig
from geometry import clamp_intensity
from logging_utils import log_event


class BridgeError(Exception):
    """Raised by a bridge when the actuator rejects or cannot serve a request."""


class FailureKind(Enum):
    INITIALIZATION = "initialization"   # permissions / first telemetry fetch; persistent, non-fatal
    COMMAND = "command"                 # intensity command rejected; transient banner, no retry
    POLL = "poll"                       # telemetry refresh; swallowed
    DIAGNOSTIC = "diagnostic"           # deep scan / dump; surfaced inline only


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

@dataclass
class DispatchOverrides:
    """Optional command fields. None means 'not present'."""
    camera_id: Optional[str] = None
    force_level: Optional[int] = None
    burst: Optional[bool] = None
    use_pwm: Optional[bool] = None

    def merged_over(self, base: "DispatchOverrides") -> "DispatchOverrides":
        """Fields set here win; unset fields fall back to base."""
        return DispatchOverrides(
            camera_id=self.camera_id if self.camera_id is not None else base.camera_id,
            force_level=self.force_level if self.force_level is not None else base.force_level,
            burst=self.burst if self.burst is not None else base.burst,
            use_pwm=self.use_pwm if self.use_pwm is not None else base.use_pwm,
        )


@dataclass
class HardwareCommand:
    """Actuator command. Absolute, so replaying or reordering is harmless."""
    intensity: float                  # 0.0 - 1.0
    camera_id: str = "0"
    force_level: Optional[int] = None
    burst: Optional[bool] = None
    use_pwm: Optional[bool] = None

    @classmethod
    def from_value(cls, value, default_camera_id: str,
                   overrides: Optional[DispatchOverrides] = None) -> "HardwareCommand":
        overrides = overrides or DispatchOverrides()
        camera_id = overrides.camera_id if overrides.camera_id is not None else default_camera_id
        return cls(
            intensity=clamp_intensity(value) / 100.0,
            camera_id=str(camera_id),
            force_level=overrides.force_level,
            burst=overrides.burst,
            use_pwm=overrides.use_pwm,
        )

    def to_payload(self) -> dict:
        """Bridge-contract parameters; optional fields only when present."""
        payload: dict[str, Any] = {
            "intensity": max(0.0, min(1.0, float(self.intensity))),
            "cameraId": self.camera_id,
        }
        if self.force_level is not None:
            payload["forceLevel"] = int(self.force_level)
        if self.burst is not None:
            payload["burst"] = bool(self.burst)
        if self.use_pwm is not None:
            payload["usePWM"] = bool(self.use_pwm)
        return payload


@dataclass(frozen=True)
class CameraInfo:
    id: str
    max_level: int
    has_flash: bool = True


@dataclass(frozen=True)
class HardwareTelemetry:
    """Snapshot of the actuator's hardware descriptor"""
    manufacturer: str
    model: str
    cameras: tuple = ()
    torch_status: str = "Unknown"
    scan_result: Optional[str] = None

    @classmethod
    def from_payload(cls, payload) -> "HardwareTelemetry":
        if not isinstance(payload, dict):
            raise BridgeError(f"Malformed hardware info: {type(payload).__name__}")
        try:
            cameras = tuple(
                CameraInfo(
                    id=str(cam["id"]),
                    max_level=int(cam.get("maxLevel", 0)),
                    has_flash=bool(cam.get("hasFlash", int(cam.get("maxLevel", 0)) > 0)),
                )
                for cam in payload.get("cameras", [])
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise BridgeError(f"Malformed camera list: {e}") from e
        scan = payload.get("scanResult")
        return cls(
            manufacturer=str(payload.get("manufacturer", "Unknown")),
            model=str(payload.get("model", "Unknown")),
            cameras=cameras,
            torch_status=str(payload.get("torchStatus", "Unknown")),
            scan_result=str(scan) if scan else None,
        )


@dataclass(frozen=True)
class CommandOutcome:
    """Result of one dispatched command"""
    sequence: int
    value: int
    status: Optional[str] = None
    target_id: Optional[str] = None
    error: Optional[str] = None
    resolved_at: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def describe(self) -> str:
        if self.ok:
            return f"{self.status} [{self.target_id}]"
        return f"Command failed ({self.value}%): {self.error}"


@dataclass(frozen=True)
class DiagnosticResult:
    operation: str
    lines: tuple = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def text(self) -> str:
        if not self.ok:
            return f"{self.operation} failed: {self.error}"
        return "\n".join(self.lines)


# ---------------------------------------------------------------------------
# Bridge contract
# ---------------------------------------------------------------------------

class ActuatorBridge(ABC):
    """
    External device-control service. Every call is single-shot and may block
    until the actuator answers; failures raise BridgeError.
    """

    @abstractmethod
    def set_intensity(self, command: HardwareCommand) -> dict:
        """Apply a command. Returns {"status": str, "id": str}."""

    @abstractmethod
    def request_permissions(self) -> None:
        ...

    @abstractmethod
    def get_hardware_info(self) -> dict:
        """Returns {manufacturer, model, cameras[], torchStatus, scanResult?}."""

    @abstractmethod
    def deep_scan(self) -> str:
        ...

    @abstractmethod
    def dump_characteristics(self, camera_id: str) -> List[str]:
        ...

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

def _error_text(exc: BaseException) -> str:
    text = str(exc) or exc.__class__.__name__
    if len(text) > 80:
        text = text[:80] + "..."
    return text


def _completed(result) -> Future:
    future: Future = Future()
    future.set_result(result)
    return future


class HardwareBridgeAdapter:
    """
    Actuator side of the control surface.
    Sends intensity commands to the actuator bridge and polls its telemetry.
    """

    def __init__(self, config: BridgeConfig, bridge: ActuatorBridge,
                 status_callback: Optional[Callable[[str, bool], None]] = None,
                 telemetry_callback: Optional[Callable[[HardwareTelemetry], None]] = None):
        """
        Args:
            config: Bridge configuration
            bridge: Actuator bridge implementation
            status_callback: Called with (status_message, is_error)
            telemetry_callback: Called with each accepted telemetry snapshot
        """
        self.config = config
        self.bridge = bridge
        self.status_callback = status_callback
        self.telemetry_callback = telemetry_callback

        self.default_overrides = DispatchOverrides(
            camera_id=config.camera_id,
            force_level=config.force_level,
            burst=config.burst,
            use_pwm=config.use_pwm,
        )

        self._lock = threading.Lock()
        # Serialises outcome recording with its status notification
        self._outcome_lock = threading.RLock()
        self._dispatch_seq = itertools.count(1)
        self._poll_seq = itertools.count(1)
        self._applied_poll_seq = 0

        self._latest_outcome: Optional[CommandOutcome] = None
        self._telemetry: Optional[HardwareTelemetry] = None
        self.init_error: Optional[str] = None
        self.status_message = "Idle"
        self.dispatch_count = 0

        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="bridge"
        )
        self._stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self.running = False
        self.closed = False

    # -- read-only views ---------------------------------------------------

    @property
    def latest_outcome(self) -> Optional[CommandOutcome]:
        with self._lock:
            return self._latest_outcome

    @property
    def telemetry(self) -> Optional[HardwareTelemetry]:
        with self._lock:
            return self._telemetry

    # -- lifecycle -----------------------------------------------------------

    def start(self, poll: bool = True) -> Future:
        """Request permissions and fetch first telemetry in the background, then start polling."""
        if self.closed:
            return _completed(False)
        if self.running:
            return _completed(self.init_error is None)
        self.running = True
        self._stop_event.clear()
        init_future = self._executor.submit(self._initialize)
        if poll:
            self._poll_thread = threading.Thread(target=self._poll_loop, name="bridge-poll", daemon=True)
            self._poll_thread.start()
        log_event("INFO", "Bridge", "Started", backend=self.bridge.__class__.__name__,
                  poll_ms=self.config.poll_interval_ms)
        return init_future

    def stop(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.running = False
        self._stop_event.set()
        if self._poll_thread is not None:
            self._poll_thread.join(timeout=1.0)
            self._poll_thread = None
        # In-flight commands are never cancelled; they finish on their own
        self._executor.shutdown(wait=False)
        try:
            self.bridge.close()
        except Exception as e:
            log_event("WARN", "Bridge", "Error closing bridge", error=e)
        log_event("INFO", "Bridge", "Stopped")

    def _initialize(self) -> bool:
        try:
            self.bridge.request_permissions()
        except Exception as e:
            self._record_init_failure(f"Permission request failed: {_error_text(e)}")
            return False
        try:
            self._apply_telemetry(next(self._poll_seq), self.bridge.get_hardware_info())
        except Exception as e:
            self._record_init_failure(f"Hardware info unavailable: {_error_text(e)}")
            return False
        telemetry = self.telemetry
        self._notify_status(f"Ready: {telemetry.manufacturer} {telemetry.model}", False)
        log_event("INFO", "Bridge", "Initialized", manufacturer=telemetry.manufacturer,
                  model=telemetry.model, cameras=len(telemetry.cameras))
        return True

    def _record_init_failure(self, message: str) -> None:
        self.init_error = message
        log_event("ERROR", "Bridge", "Initialization failed", kind=FailureKind.INITIALIZATION.value, error=message)
        self._notify_status(message, True)

    # -- commands ------------------------------------------------------------

    def on_intensity(self, value: int) -> None:
        """IntensityState listener: dispatch with the configured overrides."""
        self.dispatch(value)

    def dispatch(self, value, overrides: Optional[DispatchOverrides] = None) -> Future:
        """
        Send a command for ``value`` without blocking. Every call produces its own
        command, repeated values included. The returned future resolves to the
        CommandOutcome and never raises.
        """
        value = clamp_intensity(value)
        merged = (overrides or DispatchOverrides()).merged_over(self.default_overrides)
        command = HardwareCommand.from_value(value, self.config.camera_id, merged)
        sequence = next(self._dispatch_seq)
        self.dispatch_count += 1
        try:
            return self._executor.submit(self._run_command, sequence, value, command)
        except RuntimeError as e:
            # Pool already shut down
            return _completed(self._record_outcome(CommandOutcome(
                sequence=sequence, value=value, error=_error_text(e), resolved_at=time.time(),
            )))

    def _run_command(self, sequence: int, value: int, command: HardwareCommand) -> CommandOutcome:
        try:
            ack = self.bridge.set_intensity(command)
            if not isinstance(ack, dict):
                raise BridgeError(f"Malformed acknowledgement: {ack!r}")
            outcome = CommandOutcome(
                sequence=sequence,
                value=value,
                status=str(ack.get("status", "OK")),
                target_id=str(ack.get("id", command.camera_id)),
                resolved_at=time.time(),
            )
        except Exception as e:
            outcome = CommandOutcome(
                sequence=sequence, value=value, error=_error_text(e), resolved_at=time.time(),
            )
            log_event("WARN", "Bridge", "Command failed", kind=FailureKind.COMMAND.value,
                      seq=sequence, value=value, error=outcome.error)
        return self._record_outcome(outcome)

    def _record_outcome(self, outcome: CommandOutcome) -> CommandOutcome:
        # Last resolved wins, even if a newer command already resolved.
        # The last status notification always matches latest_outcome.
        with self._outcome_lock:
            message = outcome.describe()
            with self._lock:
                self._latest_outcome = outcome
                self.status_message = message
            self._notify_status(message, not outcome.ok)
        return outcome

    # -- telemetry -----------------------------------------------------------

    def _poll_loop(self) -> None:
        interval = self.config.poll_interval_ms / 1000.0
        while not self._stop_event.wait(interval):
            self.poll_once()

    def poll_once(self) -> bool:
        """Fetch telemetry once. Failures and stale results leave the snapshot untouched."""
        sequence = next(self._poll_seq)
        try:
            payload = self.bridge.get_hardware_info()
            return self._apply_telemetry(sequence, payload)
        except Exception as e:
            log_event("DEBUG", "Bridge", "Telemetry poll failed", kind=FailureKind.POLL.value,
                      seq=sequence, error=_error_text(e))
            return False

    def refresh_telemetry(self) -> Future:
        try:
            return self._executor.submit(self.poll_once)
        except RuntimeError:
            return _completed(False)

    def _apply_telemetry(self, sequence: int, payload) -> bool:
        telemetry = HardwareTelemetry.from_payload(payload)
        with self._lock:
            if sequence < self._applied_poll_seq:
                log_event("DEBUG", "Bridge", "Stale telemetry dropped",
                          seq=sequence, applied=self._applied_poll_seq)
                return False
            self._applied_poll_seq = sequence
            self._telemetry = telemetry
        if self.telemetry_callback:
            self.telemetry_callback(telemetry)
        return True

    # -- diagnostics ---------------------------------------------------------

    def deep_scan(self) -> Future:
        return self._submit_diagnostic("deep_scan", lambda: self.bridge.deep_scan())

    def dump_characteristics(self, camera_id: Optional[str] = None) -> Future:
        target = str(camera_id) if camera_id is not None else self.config.camera_id
        return self._submit_diagnostic(
            "dump_characteristics", lambda: self.bridge.dump_characteristics(target)
        )

    def _submit_diagnostic(self, operation: str, call: Callable[[], Any]) -> Future:
        try:
            return self._executor.submit(self._run_diagnostic, operation, call)
        except RuntimeError as e:
            return _completed(DiagnosticResult(operation=operation, error=_error_text(e)))

    def _run_diagnostic(self, operation: str, call: Callable[[], Any]) -> DiagnosticResult:
        try:
            raw = call()
        except Exception as e:
            log_event("WARN", "Bridge", "Diagnostic failed", kind=FailureKind.DIAGNOSTIC.value,
                      operation=operation, error=_error_text(e))
            return DiagnosticResult(operation=operation, error=_error_text(e))
        if isinstance(raw, (list, tuple)):
            lines = tuple(str(line) for line in raw)
        else:
            lines = tuple(str(raw).splitlines()) if raw is not None else ()
        log_event("INFO", "Bridge", "Diagnostic complete", operation=operation, lines=len(lines))
        return DiagnosticResult(operation=operation, lines=lines)

    def _notify_status(self, message: str, is_error: bool) -> None:
        """Notify status callback"""
        if self.status_callback:
            try:
                self.status_callback(message, is_error)
            except Exception as e:
                log_event("ERROR", "Bridge", "Status callback failed", error=e)

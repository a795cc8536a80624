"""
Intensity Control - Simulated Torch Bridge
In-process stand-in for the device-control service: camera torches with
strength levels, software PWM for fractional brightness, torch status reporting
and the diagnostic scans. Used for dry runs, demos and tests.
"""

import random
import threading
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

from geometry import round_half_up
from hardware_bridge import ActuatorBridge, BridgeError, HardwareCommand
from logging_utils import log_event

PWM_PERIOD_MS = 20  # 50 Hz software PWM


@dataclass
class SimulatedCamera:
    id: str
    max_level: int                    # Torch strength levels (1 = on/off only, 0 = no flash)
    has_flash: bool = True
    facing: str = "BACK"


DEFAULT_CAMERAS = (
    SimulatedCamera("0", max_level=10, has_flash=True, facing="BACK"),
    SimulatedCamera("1", max_level=0, has_flash=False, facing="FRONT"),
)


class SimulatedTorchBridge(ActuatorBridge):
    def __init__(self, cameras: Optional[Iterable[SimulatedCamera]] = None,
                 manufacturer: str = "Simulated", model: str = "Torch Emulator",
                 latency_s: float = 0.0, jitter_s: float = 0.0,
                 permissions_granted: bool = True, seed: Optional[int] = None):
        """
        Args:
            cameras: Camera list (defaults to a back torch with 10 levels and a front camera without flash)
            latency_s: Base response delay for every call
            jitter_s: Extra random delay (0..jitter_s), lets command completions reorder
            permissions_granted: When False, request_permissions fails
        """
        self.cameras = {cam.id: cam for cam in (cameras or DEFAULT_CAMERAS)}
        self.manufacturer = manufacturer
        self.model = model
        self.latency_s = latency_s
        self.jitter_s = jitter_s
        self.permissions_granted = permissions_granted
        self.fail_methods: set[str] = set()

        self._rng = random.Random(seed)
        self._lock = threading.Lock()

        self.torch_on = {cam_id: False for cam_id in self.cameras}
        self.levels = {cam_id: 0 for cam_id in self.cameras}
        self.torch_status = "Unknown"
        self.pwm_active = False
        self.pwm_on_time_ms = 0
        self.scan_result = ""
        self.commands: List[HardwareCommand] = []

    # -- helpers -------------------------------------------------------------

    def _delay(self) -> None:
        delay = self.latency_s
        if self.jitter_s > 0:
            delay += self._rng.uniform(0.0, self.jitter_s)
        if delay > 0:
            time.sleep(delay)

    def _check_failure(self, method: str) -> None:
        if method in self.fail_methods:
            raise BridgeError(f"{method} unavailable")

    def _camera(self, camera_id: str) -> SimulatedCamera:
        camera = self.cameras.get(str(camera_id))
        if camera is None:
            raise BridgeError(f"Unknown camera id {camera_id}")
        return camera

    def _set_torch(self, camera_id: str, enabled: bool) -> None:
        # Mirrors the platform torch callback, which reports the last camera that changed
        self.torch_on[camera_id] = enabled
        self.torch_status = f"ID:{camera_id} {'ON' if enabled else 'OFF'}"

    # -- bridge contract -----------------------------------------------------

    def set_intensity(self, command: HardwareCommand) -> dict:
        self._delay()
        self._check_failure("setIntensity")
        camera = self._camera(command.camera_id)
        intensity = max(0.0, min(1.0, float(command.intensity)))

        with self._lock:
            self.commands.append(command)
            if command.use_pwm and 0.0 < intensity < 1.0:
                if not camera.has_flash:
                    raise BridgeError(f"Camera {camera.id} has no flash unit")
                self.pwm_on_time_ms = int(PWM_PERIOD_MS * intensity)
                self.pwm_active = True
                status = f"PWM ACTIVE ({round_half_up(intensity * 100)}%)"
            else:
                self.pwm_active = False
                self.pwm_on_time_ms = 0
                if intensity <= 0.0:
                    self._set_torch(camera.id, False)
                    self.levels[camera.id] = 0
                else:
                    if not camera.has_flash:
                        raise BridgeError(f"Camera {camera.id} has no flash unit")
                    if command.force_level is not None:
                        level = int(command.force_level)
                    else:
                        level = round_half_up(intensity * 10)
                    self.levels[camera.id] = max(1, min(level, max(1, camera.max_level)))
                    self._set_torch(camera.id, True)
                status = self.torch_status
            if command.burst:
                status += " BURST"

        log_event("DEBUG", "SimBridge", "setIntensity", camera=camera.id,
                  intensity=f"{intensity:.2f}", torch_level=self.levels[camera.id], status=status)
        return {"status": status, "id": camera.id}

    def request_permissions(self) -> None:
        self._delay()
        self._check_failure("requestPermissions")
        if not self.permissions_granted:
            raise BridgeError("Camera permission denied")

    def get_hardware_info(self) -> dict:
        self._delay()
        self._check_failure("getHardwareInfo")
        with self._lock:
            return {
                "manufacturer": self.manufacturer,
                "model": self.model,
                "cameras": [
                    {"id": cam.id, "hasFlash": cam.has_flash, "maxLevel": cam.max_level}
                    for cam in self.cameras.values()
                ],
                "torchStatus": self.torch_status,
                "scanResult": self.scan_result,
            }

    def deep_scan(self) -> str:
        self._delay()
        self._check_failure("deepScan")
        found = [
            f"{cam.id}:{'⚡' if cam.has_flash else ''}m{cam.max_level}"
            for cam in self.cameras.values()
        ]
        with self._lock:
            self.scan_result = "IDs: " + ", ".join(found)
            return self.scan_result

    def dump_characteristics(self, camera_id: str) -> List[str]:
        self._delay()
        self._check_failure("dumpCharacteristics")
        camera = self._camera(camera_id)
        with self._lock:
            return [
                f"flash.info.available = {str(camera.has_flash).lower()}",
                f"flash.info.strengthMaximumLevel = {camera.max_level}",
                f"lens.facing = {camera.facing}",
                f"torch.enabled = {str(self.torch_on[camera.id]).lower()}",
                f"torch.level = {self.levels[camera.id]}",
            ]

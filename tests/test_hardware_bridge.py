import threading
import time
import unittest

from config import BridgeConfig
from hardware_bridge import (
    ActuatorBridge,
    BridgeError,
    DispatchOverrides,
    HardwareBridgeAdapter,
    HardwareCommand,
    HardwareTelemetry,
)
from simulated_bridge import SimulatedTorchBridge

WAIT_S = 2.0

INFO = {
    "manufacturer": "Acme",
    "model": "T-1",
    "cameras": [{"id": "0", "hasFlash": True, "maxLevel": 5}],
    "torchStatus": "ID:0 OFF",
}


def wait_for(predicate, timeout=WAIT_S):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class RecordingBridge(ActuatorBridge):
    def __init__(self):
        self.commands = []
        self.info_results = [INFO]
        self.fail_commands = None
        self.closed = False

    def set_intensity(self, command):
        self.commands.append(command)
        if self.fail_commands:
            raise BridgeError(self.fail_commands)
        return {"status": f"ID:{command.camera_id} ON", "id": command.camera_id}

    def request_permissions(self):
        pass

    def get_hardware_info(self):
        result = self.info_results.pop(0) if len(self.info_results) > 1 else self.info_results[0]
        if isinstance(result, Exception):
            raise result
        return result

    def deep_scan(self):
        return "IDs: 0:m5"

    def dump_characteristics(self, camera_id):
        return [f"camera = {camera_id}", "torch.level = 0"]

    def close(self):
        self.closed = True


class GatedBridge(RecordingBridge):
    """set_intensity blocks until the test opens the gate for that value."""

    def __init__(self, values):
        super().__init__()
        self.gates = {value: threading.Event() for value in values}

    def set_intensity(self, command):
        value = int(round(command.intensity * 100))
        self.gates[value].wait(WAIT_S)
        return {"status": f"ACK {value}", "id": command.camera_id}


class TestCommandPayload(unittest.TestCase):
    def test_defaults_omit_optional_fields(self):
        command = HardwareCommand.from_value(42, "0")
        self.assertEqual(command.to_payload(), {"intensity": 0.42, "cameraId": "0"})

    def test_overrides_are_included(self):
        overrides = DispatchOverrides(camera_id="1", force_level=3, burst=True, use_pwm=False)
        payload = HardwareCommand.from_value(100, "0", overrides).to_payload()
        self.assertEqual(payload, {
            "intensity": 1.0, "cameraId": "1", "forceLevel": 3, "burst": True, "usePWM": False,
        })

    def test_merge_prefers_explicit_fields(self):
        base = DispatchOverrides(camera_id="0", use_pwm=True)
        merged = DispatchOverrides(camera_id="2").merged_over(base)
        self.assertEqual(merged.camera_id, "2")
        self.assertTrue(merged.use_pwm)

    def test_telemetry_from_payload(self):
        telemetry = HardwareTelemetry.from_payload(INFO)
        self.assertEqual(telemetry.manufacturer, "Acme")
        self.assertEqual(telemetry.cameras[0].max_level, 5)
        self.assertIsNone(telemetry.scan_result)

    def test_malformed_telemetry(self):
        with self.assertRaises(BridgeError):
            HardwareTelemetry.from_payload(["not", "a", "dict"])
        with self.assertRaises(BridgeError):
            HardwareTelemetry.from_payload({"cameras": [{"maxLevel": 1}]})


class TestHardwareBridgeAdapter(unittest.TestCase):
    def setUp(self):
        self.statuses = []
        self.adapters = []

    def tearDown(self):
        for adapter in self.adapters:
            adapter.stop()

    def make_adapter(self, bridge, **config_overrides):
        config = BridgeConfig(**config_overrides)
        adapter = HardwareBridgeAdapter(
            config, bridge, status_callback=lambda msg, err: self.statuses.append((msg, err))
        )
        self.adapters.append(adapter)
        return adapter

    def test_repeated_values_are_not_deduplicated(self):
        bridge = RecordingBridge()
        adapter = self.make_adapter(bridge, max_workers=1)

        first = adapter.dispatch(40).result(WAIT_S)
        second = adapter.dispatch(40).result(WAIT_S)

        self.assertEqual(len(bridge.commands), 2)
        self.assertTrue(first.ok and second.ok)
        self.assertLess(first.sequence, second.sequence)
        self.assertEqual(adapter.dispatch_count, 2)

    def test_success_outcome(self):
        adapter = self.make_adapter(RecordingBridge())
        outcome = adapter.dispatch(25).result(WAIT_S)
        self.assertEqual(outcome.describe(), "ID:0 ON [0]")
        self.assertEqual(adapter.status_message, "ID:0 ON [0]")
        self.assertEqual(self.statuses[-1], ("ID:0 ON [0]", False))

    def test_default_overrides_come_from_config(self):
        bridge = RecordingBridge()
        adapter = self.make_adapter(bridge, camera_id="1", use_pwm=True)
        adapter.dispatch(10).result(WAIT_S)
        self.assertEqual(bridge.commands[0].camera_id, "1")
        self.assertTrue(bridge.commands[0].use_pwm)

    def test_command_failure_becomes_status(self):
        bridge = RecordingBridge()
        bridge.fail_commands = "Camera in use"
        adapter = self.make_adapter(bridge)

        outcome = adapter.dispatch(40).result(WAIT_S)

        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.describe(), "Command failed (40%): Camera in use")
        self.assertEqual(self.statuses[-1], ("Command failed (40%): Camera in use", True))

    def test_last_resolved_wins(self):
        bridge = GatedBridge([42, 50])
        adapter = self.make_adapter(bridge, max_workers=2)

        early = adapter.dispatch(42)
        late = adapter.dispatch(50)

        bridge.gates[50].set()
        late.result(WAIT_S)
        self.assertEqual(adapter.latest_outcome.value, 50)

        bridge.gates[42].set()
        early.result(WAIT_S)
        self.assertEqual(adapter.latest_outcome.value, 42)
        self.assertEqual(adapter.latest_outcome.status, "ACK 42")
        self.assertEqual(adapter.status_message, "ACK 42 [0]")
        self.assertEqual(self.statuses[-1], ("ACK 42 [0]", False))

    def test_overlapping_completions_keep_status_in_step(self):
        bridge = GatedBridge([42, 50])
        in_callback = threading.Event()
        seen = []

        def slow_status(message, is_error):
            if message.startswith("ACK 42"):
                in_callback.set()
                time.sleep(0.2)  # second completion arrives meanwhile
            seen.append(message)

        adapter = HardwareBridgeAdapter(BridgeConfig(max_workers=2), bridge, status_callback=slow_status)
        self.adapters.append(adapter)

        early = adapter.dispatch(42)
        late = adapter.dispatch(50)
        bridge.gates[42].set()
        self.assertTrue(in_callback.wait(WAIT_S))
        bridge.gates[50].set()
        early.result(WAIT_S)
        late.result(WAIT_S)

        latest = adapter.latest_outcome
        self.assertEqual(latest.value, 50)
        self.assertEqual(adapter.status_message, latest.describe())
        self.assertEqual(seen, ["ACK 42 [0]", "ACK 50 [0]"])

    def test_dispatch_normalises_value(self):
        bridge = RecordingBridge()
        adapter = self.make_adapter(bridge, max_workers=1)

        nan_outcome = adapter.dispatch(float("nan")).result(WAIT_S)
        adapter.dispatch(42.7).result(WAIT_S)
        adapter.dispatch(250).result(WAIT_S)

        self.assertTrue(nan_outcome.ok)
        self.assertEqual(nan_outcome.value, 0)
        self.assertEqual([cmd.intensity for cmd in bridge.commands], [0.0, 0.43, 1.0])

    def test_dispatch_after_stop_reports_error(self):
        bridge = RecordingBridge()
        adapter = self.make_adapter(bridge)
        adapter.stop()

        outcome = adapter.dispatch(10).result(WAIT_S)
        self.assertFalse(outcome.ok)
        self.assertTrue(bridge.closed)

    def test_initialize_fetches_telemetry(self):
        telemetry_seen = []
        adapter = HardwareBridgeAdapter(BridgeConfig(), RecordingBridge(),
                                        telemetry_callback=telemetry_seen.append)
        self.adapters.append(adapter)

        self.assertTrue(adapter.start(poll=False).result(WAIT_S))
        self.assertEqual(adapter.telemetry.model, "T-1")
        self.assertEqual(len(telemetry_seen), 1)
        self.assertIsNone(adapter.init_error)

    def test_permission_failure_is_persistent_and_non_fatal(self):
        bridge = SimulatedTorchBridge(permissions_granted=False)
        adapter = self.make_adapter(bridge)

        self.assertFalse(adapter.start(poll=False).result(WAIT_S))
        self.assertTrue(adapter.init_error.startswith("Permission request failed"))
        self.assertIn((adapter.init_error, True), self.statuses)

        # Commands still go out
        self.assertTrue(adapter.dispatch(30).result(WAIT_S).ok)
        self.assertIsNotNone(adapter.init_error)

    def test_failed_polls_keep_last_snapshot(self):
        bridge = RecordingBridge()
        bridge.info_results = [INFO] + [BridgeError("timeout")] * 3 + [INFO]
        adapter = self.make_adapter(bridge)
        adapter.start(poll=False).result(WAIT_S)
        snapshot = adapter.telemetry

        for _ in range(3):
            self.assertFalse(adapter.poll_once())
            self.assertIs(adapter.telemetry, snapshot)

    def test_stale_poll_result_is_dropped(self):
        adapter = self.make_adapter(RecordingBridge())
        newer = dict(INFO, torchStatus="ID:0 ON")

        self.assertTrue(adapter._apply_telemetry(5, newer))
        self.assertFalse(adapter._apply_telemetry(3, INFO))
        self.assertEqual(adapter.telemetry.torch_status, "ID:0 ON")

    def test_poll_loop_runs_until_stopped(self):
        bridge = RecordingBridge()
        calls = []
        real_info = bridge.get_hardware_info

        def counting():
            calls.append(time.monotonic())
            return real_info()

        bridge.get_hardware_info = counting
        adapter = self.make_adapter(bridge, poll_interval_ms=20)
        adapter.start()

        self.assertTrue(wait_for(lambda: len(calls) >= 3))
        adapter.stop()
        count = len(calls)
        time.sleep(0.1)
        self.assertLessEqual(len(calls), count + 1)

    def test_refresh_telemetry(self):
        adapter = self.make_adapter(RecordingBridge())
        self.assertTrue(adapter.refresh_telemetry().result(WAIT_S))
        self.assertEqual(adapter.telemetry.manufacturer, "Acme")

    def test_diagnostics(self):
        adapter = self.make_adapter(RecordingBridge(), camera_id="0")

        scan = adapter.deep_scan().result(WAIT_S)
        self.assertTrue(scan.ok)
        self.assertEqual(scan.text, "IDs: 0:m5")

        dump = adapter.dump_characteristics("3").result(WAIT_S)
        self.assertEqual(dump.lines, ("camera = 3", "torch.level = 0"))

    def test_diagnostic_failure_is_inline(self):
        bridge = SimulatedTorchBridge()
        bridge.fail_methods = {"deepScan"}
        adapter = self.make_adapter(bridge)

        result = adapter.deep_scan().result(WAIT_S)

        self.assertFalse(result.ok)
        self.assertEqual(result.text, "deep_scan failed: deepScan unavailable")
        self.assertEqual(self.statuses, [])


if __name__ == "__main__":
    unittest.main()

import unittest

from config import ViewMode
from intensity_state import IntensityState


class TestIntensityState(unittest.TestCase):
    def test_defaults(self):
        state = IntensityState()
        self.assertEqual(state.intensity, 0)
        self.assertEqual(state.mode, ViewMode.DIAL)
        self.assertEqual(state.active_step, 1)

    def test_every_write_notifies(self):
        state = IntensityState()
        seen = []
        state.add_intensity_listener(seen.append)

        state.set_intensity(40)
        state.set_intensity(40)
        state.set_intensity(41)

        self.assertEqual(seen, [40, 40, 41])
        self.assertEqual(state.write_count, 3)

    def test_write_clamps(self):
        state = IntensityState()
        self.assertEqual(state.set_intensity(250), 100)
        self.assertAlmostEqual(state.fraction, 1.0)
        self.assertEqual(state.set_intensity(float("nan")), 0)

    def test_listener_failure_does_not_stop_others(self):
        state = IntensityState()
        seen = []

        def broken(_value):
            raise RuntimeError("boom")

        state.add_intensity_listener(broken)
        state.add_intensity_listener(seen.append)

        state.set_intensity(12)
        self.assertEqual(seen, [12])
        self.assertEqual(state.intensity, 12)

    def test_listeners_run_in_registration_order(self):
        state = IntensityState()
        order = []
        state.add_intensity_listener(lambda v: order.append("feedback"))
        state.add_intensity_listener(lambda v: order.append("hardware"))
        state.set_intensity(5)
        self.assertEqual(order, ["feedback", "hardware"])

    def test_mode_change_notifies_once(self):
        state = IntensityState(intensity=30)
        modes = []
        state.add_mode_listener(modes.append)

        state.set_mode(ViewMode.TRACK)
        state.set_mode(ViewMode.TRACK)

        self.assertEqual(modes, [ViewMode.TRACK])
        self.assertEqual(state.intensity, 30)


if __name__ == "__main__":
    unittest.main()

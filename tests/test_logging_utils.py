import unittest

from logging_utils import LOGGER_NAME, get_log_level, log_event, set_log_level


class TestLogEvent(unittest.TestCase):
    def tearDown(self):
        set_log_level("INFO")

    def test_fields_and_tag(self):
        with self.assertLogs(LOGGER_NAME, level="DEBUG") as cm:
            log_event("WARN", "Bridge", "Command failed", seq=3, value=40)

        self.assertEqual(cm.output, [f"WARNING:{LOGGER_NAME}:Command failed | seq=3 value=40"])
        self.assertEqual(cm.records[0].tag, "Bridge")

    def test_fields_may_reuse_parameter_names(self):
        with self.assertLogs(LOGGER_NAME, level="DEBUG") as cm:
            log_event("DEBUG", "SimBridge", "setIntensity", level=4, tag="x", message="m")
        self.assertEqual(cm.records[0].getMessage(), "setIntensity | level=4 tag=x message=m")
        self.assertEqual(cm.records[0].tag, "SimBridge")

    def test_unknown_level_logs_as_info(self):
        with self.assertLogs(LOGGER_NAME, level="DEBUG") as cm:
            log_event("LOUD", "Test", "hello")
        self.assertEqual(cm.records[0].levelname, "INFO")

    def test_set_log_level_accepts_aliases(self):
        set_log_level("warn")
        self.assertEqual(get_log_level(), "WARNING")
        set_log_level("debug")
        self.assertEqual(get_log_level(), "DEBUG")
        set_log_level(None)
        self.assertEqual(get_log_level(), "INFO")


if __name__ == "__main__":
    unittest.main()

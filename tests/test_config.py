import json
import tempfile
import unittest
from datetime import timedelta
from pathlib import Path

from sharedmetrics.config_loader import load_config
from sharedmetrics.storage import JsonConfig


class LoadConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)

    def _write(self, text: str) -> Path:
        path = self.dir / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_minimal_config_uses_defaults(self):
        config = load_config(self._write("reporting:\n  metrics_url: https://collector.test/\n"))
        self.assertEqual(config.reporting.metrics_url, "https://collector.test/")
        self.assertEqual(config.reporting.interval, timedelta(hours=1))
        self.assertEqual(config.ip_location.base_url, "https://ipinfo.io")
        self.assertEqual(config.http.max_redirects, 10)
        self.assertEqual(config.logging.level, "INFO")

    def test_full_config(self):
        config = load_config(
            self._write(
                """
reporting:
  metrics_url: https://collector.test/
  interval: 30m
ip_location:
  base_url: https://geo.test
  timeout: 2.5
  cache_size: 16
storage:
  state_file: /var/lib/metrics/state.json
  server_config_file: /var/lib/metrics/server.json
http:
  timeout: 5
  max_redirects: 3
logging:
  level: debug
"""
            )
        )
        self.assertEqual(config.reporting.interval, timedelta(minutes=30))
        self.assertEqual(config.ip_location.timeout, 2.5)
        self.assertEqual(config.ip_location.cache_size, 16)
        self.assertEqual(config.storage.state_file, Path("/var/lib/metrics/state.json"))
        self.assertEqual(config.storage.server_config_file, Path("/var/lib/metrics/server.json"))
        self.assertEqual(config.http.max_redirects, 3)
        self.assertEqual(config.logging.level, "DEBUG")

    def test_requires_metrics_url(self):
        with self.assertRaises(ValueError):
            load_config(self._write("ip_location:\n  timeout: 3\n"))

    def test_rejects_unknown_duration_unit(self):
        with self.assertRaises(ValueError):
            load_config(self._write("reporting:\n  metrics_url: x\n  interval: 3w\n"))

    def test_rejects_non_mapping_root(self):
        with self.assertRaises(ValueError):
            load_config(self._write("- just\n- a list\n"))

    def test_rejects_unknown_logging_level(self):
        with self.assertRaises(ValueError):
            load_config(self._write("reporting:\n  metrics_url: x\nlogging:\n  level: loud\n"))


class JsonConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "nested" / "state.json"

    def test_missing_file_is_empty(self):
        self.assertEqual(JsonConfig(self.path).data(), {})

    def test_write_and_reload(self):
        config = JsonConfig(self.path)
        config.data()["startTimestamp"] = 123
        config.write()
        self.assertEqual(json.loads(self.path.read_text(encoding="utf-8")), {"startTimestamp": 123})
        self.assertEqual(JsonConfig(self.path).data(), {"startTimestamp": 123})
        self.assertEqual(list(self.path.parent.glob("*.tmp")), [])

    def test_corrupt_file_is_empty(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertLogs("sharedmetrics.storage.json_config", level="WARNING"):
            config = JsonConfig(self.path)
        self.assertEqual(config.data(), {})

    def test_non_object_file_is_empty(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("[1, 2]", encoding="utf-8")
        with self.assertLogs("sharedmetrics.storage.json_config", level="WARNING"):
            config = JsonConfig(self.path)
        self.assertEqual(config.data(), {})


if __name__ == "__main__":
    unittest.main()

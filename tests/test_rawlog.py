import os
import tempfile
import unittest
from unittest.mock import MagicMock

from dht_monitor.rawlog import RawLog


class TestRawLog(unittest.TestCase):

    def test_tail_is_bounded(self):
        raw = RawLog(max_lines=3, timestamp=False)
        for i in range(5):
            raw.write(f"line {i}")
        self.assertEqual(list(raw.lines), ["line 2", "line 3", "line 4"])
        self.assertEqual(raw.text(), "line 2\nline 3\nline 4")
        raw.clear()
        self.assertEqual(raw.text(), "")

    def test_timestamp_prefix(self):
        raw = RawLog()
        raw.write("21.5,48")
        self.assertRegex(raw.lines[-1], r"^\d\d:\d\d:\d\d\.\d{3} 21\.5,48$")

    def test_file_mirror(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "raw.txt")
            raw = RawLog(timestamp=False)
            raw.start(path)
            self.assertTrue(raw.logging)
            raw.write("a")
            raw.write("b")
            raw.stop()
            self.assertFalse(raw.logging)
            raw.write("not logged")

            raw.start(path, append=True)
            raw.write("c")
            raw.stop()
            with open(path, encoding="utf-8") as f:
                self.assertEqual(f.read(), "a\nb\nc\n")

    def test_write_failure_disables_logging(self):
        raw = RawLog(timestamp=False)
        broken = MagicMock()
        broken.write.side_effect = OSError("disk full")
        raw._file = broken
        self.assertFalse(raw.write("x"))
        self.assertFalse(raw.logging)
        broken.close.assert_called_once()
        self.assertTrue(raw.write("y"))
        self.assertEqual(list(raw.lines), ["x", "y"])


if __name__ == "__main__":
    unittest.main()

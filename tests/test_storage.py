import tempfile
import unittest
from pathlib import Path

from dht_monitor.storage import JsonFileStore, MemoryStore


class TestJsonFileStore(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name) / "data"
        self.store = JsonFileStore(self.dir)

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_key(self):
        self.assertIsNone(self.store.load("dht_history_v1"))

    def test_save_load_delete(self):
        self.store.save("dht_history_v1", "[1,2]")
        self.assertTrue((self.dir / "dht_history_v1.json").exists())
        self.assertEqual(self.store.load("dht_history_v1"), "[1,2]")
        self.store.save("dht_history_v1", "[3]")
        self.assertEqual(self.store.load("dht_history_v1"), "[3]")
        self.store.delete("dht_history_v1")
        self.assertIsNone(self.store.load("dht_history_v1"))
        self.assertEqual(list(self.dir.glob("*.tmp")), [])

    def test_delete_missing_is_ok(self):
        self.store.delete("nothing_here")

    def test_rejects_path_like_keys(self):
        with self.assertRaises(ValueError):
            self.store.load("../etc/passwd")


class TestMemoryStore(unittest.TestCase):

    def test_basic(self):
        s = MemoryStore({"a": "1"})
        self.assertEqual(s.load("a"), "1")
        s.save("b", "2")
        s.delete("a")
        s.delete("a")
        self.assertIsNone(s.load("a"))
        self.assertEqual(s.load("b"), "2")


if __name__ == "__main__":
    unittest.main()

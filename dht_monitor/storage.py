"""
storage.py - key/value blob stores used for history and prefs.

Store methods raise OSError on I/O failure; callers decide whether that is
fatal (it never is for history or prefs, see HistoryStore / load_prefs).
"""
import os
import re
import threading
from collections import namedtuple
from pathlib import Path

StoreResult = namedtuple("StoreResult", ["ok", "error"], defaults=[None])

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_key(key):
    if not _KEY_RE.match(key):
        raise ValueError(f"Invalid store key: {key!r}")


class JsonFileStore:
    """One file per key: <directory>/<key>.json"""

    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, key) -> Path:
        _check_key(key)
        return self.directory / f"{key}.json"

    def load(self, key):
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def save(self, key, blob: str):
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8", newline="") as f:
            f.write(blob)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)

    def delete(self, key):
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


class MemoryStore:
    def __init__(self, initial=None):
        self._data = dict(initial or {})
        self._lock = threading.Lock()

    def load(self, key):
        with self._lock:
            return self._data.get(key)

    def save(self, key, blob: str):
        with self._lock:
            self._data[key] = blob

    def delete(self, key):
        with self._lock:
            self._data.pop(key, None)

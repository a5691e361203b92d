import threading
from collections import deque
from datetime import datetime

from . import config
from .logging_cfg import get_logger

log = get_logger(__name__)


def ts_hms_mmm(now=None) -> str:
    now = now or datetime.now()
    return now.strftime("%H:%M:%S.") + f"{now.microsecond // 1000:03d}"


class RawLog:
    """
    Sink for every received line: a bounded in-memory tail for display and
    an optional text file. File errors stop file logging, they never
    propagate into the reader.
    """

    def __init__(self, max_lines=config.RAW_LOG_MAX_LINES, timestamp=True):
        self.lines = deque(maxlen=max_lines)
        self.timestamp = timestamp
        self.path = None
        self._file = None
        self._lock = threading.Lock()

    @property
    def logging(self) -> bool:
        return self._file is not None

    def _format(self, text: str) -> str:
        if self.timestamp:
            return f"{ts_hms_mmm()} {text}"
        return text

    def start(self, path, append=False):
        """Start mirroring lines to `path`. Raises OSError if it cannot be opened."""
        self.stop()
        mode = "a" if append else "w"
        f = open(path, mode, encoding="utf-8")
        with self._lock:
            self._file = f
            self.path = str(path)
        log.info("Raw logging started: %s (mode=%s)", path, mode)

    def stop(self):
        with self._lock:
            f, self._file = self._file, None
            path, self.path = self.path, None
        if f is None:
            return
        try:
            f.close()
        except OSError as e:
            log.warning("Closing raw log %s failed: %s", path, e)
        log.info("Raw logging stopped: %s", path)

    def write(self, text: str):
        """Record one line; returns False if the file write failed (logging is then disabled)."""
        out = self._format(text)
        with self._lock:
            self.lines.append(out)
            f = self._file
            if f is None:
                return True
            try:
                f.write(out + "\n")
                f.flush()
            except OSError as e:
                log.warning("Raw log write failed, logging disabled: %s", e)
                self._file = None
                self.path = None
                try:
                    f.close()
                except OSError as close_err:
                    log.debug("Closing raw log after failure: %s", close_err)
                return False
        return True

    def clear(self):
        with self._lock:
            self.lines.clear()

    def text(self) -> str:
        with self._lock:
            return "\n".join(self.lines)

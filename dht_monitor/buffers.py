import json
import math
import threading
import time
from collections import deque
from dataclasses import dataclass

from . import config
from .logging_cfg import get_logger
from .storage import StoreResult

log = get_logger(__name__)


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Sample:
    ts: int           # epoch milliseconds
    temp_c: float
    hum_pct: float

    def is_finite(self) -> bool:
        return all(isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
                   for v in (self.ts, self.temp_c, self.hum_pct))

    def to_record(self) -> dict:
        return {"ts": self.ts, "t": self.temp_c, "h": self.hum_pct}

    @classmethod
    def from_record(cls, rec):
        """Build from a persisted {ts, t, h} record; None if it is not usable."""
        if not isinstance(rec, dict):
            return None
        s = cls(rec.get("ts"), rec.get("t"), rec.get("h"))
        if not s.is_finite():
            return None
        return s


class LiveBuffer:
    """Recent samples, bounded by age relative to the newest append."""

    def __init__(self, max_age_ms=config.LIVE_MAX_BUFFER_MS):
        self.max_age_ms = max_age_ms
        self._samples = deque()
        self._received = None     # newest appended sample; seed() leaves it alone
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._samples)

    def append(self, sample: Sample):
        with self._lock:
            self._samples.append(sample)
            self._received = sample
            min_ts = sample.ts - self.max_age_ms
            while self._samples and self._samples[0].ts < min_ts:
                self._samples.popleft()

    def seed(self, samples):
        """Replace contents with already-ordered samples (startup bootstrap)."""
        with self._lock:
            self._samples = deque(samples)

    def view_since(self, cutoff_ms):
        with self._lock:
            return [s for s in self._samples if s.ts >= cutoff_ms]

    def latest(self):
        with self._lock:
            return self._samples[-1] if self._samples else None

    def last_received(self):
        """Newest sample that arrived through append(), None after clear() or when only seeded."""
        with self._lock:
            return self._received

    def clear(self):
        with self._lock:
            self._samples.clear()
            self._received = None


class HistoryStore:
    """
    Coarse, capped, persisted series.

    At most one point per save_interval_ms (measured on the caller's tick
    clock), oldest evicted past max_points, written through to `store`
    after every append. Store failures are logged and returned, never raised.
    """

    def __init__(self, store, key=config.HISTORY_KEY,
                 max_points=config.HISTORY_MAX_POINTS,
                 save_interval_ms=config.HISTORY_SAVE_MS):
        self.store = store
        self.key = key
        self.max_points = max_points
        self.save_interval_ms = save_interval_ms
        self.last_saved_ms = 0
        self._samples = []
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._samples)

    def load(self) -> StoreResult:
        try:
            raw = self.store.load(self.key)
        except (OSError, UnicodeDecodeError) as e:
            log.warning("History read failed, starting empty: %s", e)
            with self._lock:
                self._samples = []
            return StoreResult(False, str(e))

        samples = []
        if raw:
            try:
                arr = json.loads(raw)
            except (ValueError, RecursionError) as e:
                log.warning("History blob is malformed, starting empty: %s", e)
                arr = []
            if isinstance(arr, list):
                for rec in arr:
                    s = Sample.from_record(rec)
                    if s is not None:
                        samples.append(s)
                dropped = len(arr) - len(samples)
                if dropped:
                    log.info("Dropped %d invalid history records", dropped)

        with self._lock:
            self._samples = samples[-self.max_points:]
            log.info("Loaded %d history points", len(self._samples))
        return StoreResult(True)

    def maybe_persist(self, sample, tick_ms) -> bool:
        """Append `sample` if save_interval_ms elapsed since the last append. Returns True if appended."""
        if sample is None:
            return False
        with self._lock:
            if tick_ms - self.last_saved_ms < self.save_interval_ms:
                return False
            self._samples.append(sample)
            if len(self._samples) > self.max_points:
                del self._samples[:len(self._samples) - self.max_points]
            self.last_saved_ms = tick_ms
            blob = json.dumps([s.to_record() for s in self._samples], separators=(",", ":"))

        self._write(blob)
        return True

    def _write(self, blob) -> StoreResult:
        try:
            self.store.save(self.key, blob)
        except OSError as e:
            log.warning("History write failed (in-memory series kept): %s", e)
            return StoreResult(False, str(e))
        return StoreResult(True)

    def all(self):
        with self._lock:
            return list(self._samples)

    def since(self, cutoff_ms):
        with self._lock:
            return [s for s in self._samples if s.ts >= cutoff_ms]

    def clear(self) -> StoreResult:
        with self._lock:
            self._samples = []
        try:
            self.store.delete(self.key)
        except OSError as e:
            log.warning("History delete failed: %s", e)
            return StoreResult(False, str(e))
        return StoreResult(True)

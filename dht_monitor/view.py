import csv
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

from . import config
from .buffers import now_ms


# ---------------- range specs ----------------
@dataclass(frozen=True)
class RangeSpec:
    live: bool
    window_ms: int = None     # None with live=False means "all"

    @classmethod
    def for_live(cls, window_ms):
        return cls(True, int(window_ms))

    @classmethod
    def for_history(cls, duration_ms=None):
        return cls(False, None if duration_ms is None else int(duration_ms))


def parse_range(name: str, live_window_ms=config.DEFAULT_LIVE_WINDOW_MS) -> RangeSpec:
    """Map a selector value (live|1h|6h|24h|7d|all) to a RangeSpec."""
    name = (name or "").strip().lower()
    if name == "live":
        return RangeSpec.for_live(min(live_window_ms, config.LIVE_MAX_BUFFER_MS))
    if name == "all":
        return RangeSpec.for_history()
    if name in config.RANGE_DURATIONS_MS:
        return RangeSpec.for_history(config.RANGE_DURATIONS_MS[name])
    raise ValueError(f"Unknown range {name!r}; expected one of {', '.join(config.RANGE_CHOICES)}")


# ---------------- results ----------------
@dataclass
class ViewResult:
    samples: list = field(default_factory=list)
    last_ts: int = None
    temp_avg: float = None
    hum_avg: float = None
    temp_delta: float = None   # last sample minus average
    hum_delta: float = None

    def __len__(self):
        return len(self.samples)

    @classmethod
    def from_samples(cls, samples):
        if not samples:
            return cls(list(samples))
        n = len(samples)
        t_avg = math.fsum(s.temp_c for s in samples) / n
        h_avg = math.fsum(s.hum_pct for s in samples) / n
        last = samples[-1]
        return cls(
            samples=list(samples),
            last_ts=last.ts,
            temp_avg=t_avg,
            hum_avg=h_avg,
            temp_delta=last.temp_c - t_avg,
            hum_delta=last.hum_pct - h_avg,
        )


def thin(samples, max_points=config.MAX_VIEW_POINTS):
    """
    Keep every stride-th sample (stride = ceil(n / max_points)), plus the last one.
    Index based, so peaks between kept samples are not represented.
    """
    n = len(samples)
    if max_points is None or n <= max_points:
        return list(samples)
    stride = math.ceil(n / max_points)
    out = list(samples[::stride])
    if (n - 1) % stride:
        if len(out) < max_points:
            out.append(samples[-1])
        else:
            out[-1] = samples[-1]
    return out


class RangeView:
    def __init__(self, live, history, clock=None, max_points=config.MAX_VIEW_POINTS):
        self.live = live
        self.history = history
        self.clock = clock or now_ms
        self.max_points = max_points

    def resolve(self, spec: RangeSpec) -> ViewResult:
        now = self.clock()
        if spec.live:
            return ViewResult.from_samples(self.live.view_since(now - spec.window_ms))

        if spec.window_ms is None:
            src = self.history.all()
        else:
            src = self.history.since(now - spec.window_ms)
        return ViewResult.from_samples(thin(src, self.max_points))


# ---------------- export ----------------
def iso_ms(ts_ms) -> str:
    """Epoch ms -> 2024-01-31T12:00:00.000Z"""
    ts_ms = int(ts_ms)
    dt = datetime.fromtimestamp(ts_ms // 1000, tz=timezone.utc)
    return f"{dt.strftime('%Y-%m-%dT%H:%M:%S')}.{ts_ms % 1000:03d}Z"


def write_csv(result: ViewResult, f):
    w = csv.writer(f, lineterminator="\n")
    w.writerow(config.CSV_HEADER)
    for s in result.samples:
        w.writerow([iso_ms(s.ts), s.temp_c, s.hum_pct])
    return len(result.samples)


def export_csv(result: ViewResult, path):
    with open(path, "w", newline="", encoding="utf-8") as f:
        return write_csv(result, f)


def export_filename(range_name, ts_ms=None) -> str:
    if ts_ms is None:
        ts_ms = now_ms()
    return f"dht_history_{range_name}_{iso_ms(ts_ms).replace(':', '-')}.csv"

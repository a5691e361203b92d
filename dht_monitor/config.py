import json
import math
import os
from dataclasses import dataclass
from pathlib import Path

from .logging_cfg import get_logger
from .storage import StoreResult

log = get_logger(__name__)


# ---------------- CONFIG ----------------
DATA_DIR_DEFAULT = Path(os.environ.get("DHT_MONITOR_HOME", Path.home() / ".dht_monitor"))

DEFAULT_BAUDS = [9600, 19200, 38400, 57600, 115200, 230400, 460800, 921600]
DEFAULT_BAUD = 9600

READ_TIMEOUT_SEC = 0.2
CLOSE_JOIN_TIMEOUT_SEC = 2.0
UI_POLL_MS = 50

LIVE_MAX_BUFFER_MS = 15 * 60 * 1000     # keep up to 15 minutes in memory
DEFAULT_LIVE_WINDOW_MS = 2 * 60 * 1000
LIVE_WINDOW_CHOICES_MS = [30_000, 60_000, 2 * 60_000, 5 * 60_000, 10 * 60_000, 15 * 60_000]

HISTORY_KEY = "dht_history_v1"
HISTORY_SAVE_MS = 60_000                # one history point per minute
HISTORY_MAX_POINTS = 10_080             # 7 days @ 1/min
HISTORY_TICK_SEC = 5.0

BOOTSTRAP_WINDOW_MS = 30 * 60 * 1000
BOOTSTRAP_MAX_POINTS = 1000

MAX_VIEW_POINTS = 2000
RAW_LOG_MAX_LINES = 5000

MIN_INTERVAL_MS = 1000
INTERVAL_PROBE_DELAY_SEC = 1.2          # boards reset when the port opens

PREFS_KEY = "dht_prefs_v1"

RANGE_CHOICES = ["live", "1h", "6h", "24h", "7d", "all"]
RANGE_DURATIONS_MS = {
    "1h": 60 * 60 * 1000,
    "6h": 6 * 60 * 60 * 1000,
    "24h": 24 * 60 * 60 * 1000,
    "7d": 7 * 24 * 60 * 60 * 1000,
}

CSV_HEADER = ["time", "temp_c", "humidity_pct"]


# ---------------- prefs ----------------
@dataclass
class Prefs:
    show_graph: bool = True
    show_raw: bool = False
    live_window_ms: int = DEFAULT_LIVE_WINDOW_MS

    def to_blob(self) -> str:
        return json.dumps({
            "showGraph": self.show_graph,
            "showRaw": self.show_raw,
            "liveWindowMs": self.live_window_ms,
        })


def load_prefs(store) -> Prefs:
    """Merge the stored prefs record over the defaults; any failure yields defaults."""
    prefs = Prefs()
    try:
        raw = store.load(PREFS_KEY)
    except (OSError, UnicodeDecodeError) as e:
        log.warning("Prefs read failed: %s", e)
        return prefs
    if not raw:
        return prefs

    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        log.warning("Prefs record is malformed, using defaults: %s", e)
        return prefs
    if not isinstance(data, dict):
        return prefs

    if "showGraph" in data:
        prefs.show_graph = bool(data["showGraph"])
    if "showRaw" in data:
        prefs.show_raw = bool(data["showRaw"])

    win = data.get("liveWindowMs")
    if isinstance(win, (int, float)) and not isinstance(win, bool) and math.isfinite(win) and win > 0:
        prefs.live_window_ms = int(win)
    return prefs


def save_prefs(store, prefs: Prefs):
    try:
        store.save(PREFS_KEY, prefs.to_blob())
    except OSError as e:
        log.warning("Prefs write failed: %s", e)
        return StoreResult(False, str(e))
    return StoreResult(True)


import threading
from queue import Queue

from . import config
from .buffers import HistoryStore, LiveBuffer, now_ms
from .logging_cfg import get_logger
from .rawlog import RawLog
from .session import TransportSession
from .storage import JsonFileStore
from .view import RangeView, export_csv, parse_range

log = get_logger(__name__)


class HistoryTicker:
    """Offer the newest received sample to the history store every `period` seconds."""

    def __init__(self, live, history, period=config.HISTORY_TICK_SEC, clock=now_ms):
        self.live = live
        self.history = history
        self.period = period
        self.clock = clock
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> bool:
        return self.history.maybe_persist(self.live.last_received(), self.clock())

    def _run(self):
        while not self._stop.wait(self.period):
            self.tick()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="history-ticker", daemon=True)
        self._thread.start()

    def stop(self, timeout=1.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None


class DataMonitor:
    """Owns the buffers, the store and the serial session for one app instance."""

    def __init__(self, store=None, data_dir=config.DATA_DIR_DEFAULT, clock=now_ms, **session_kw):
        self.store = store if store is not None else JsonFileStore(data_dir)
        self.clock = clock
        self.prefs = config.Prefs()

        self.live = LiveBuffer()
        self.history = HistoryStore(self.store)
        self.view = RangeView(self.live, self.history, clock=clock)
        self.raw_log = RawLog()
        self.events = Queue()

        self.session = TransportSession(
            self.live, self.history, raw_log=self.raw_log,
            events=self.events, clock=clock, **session_kw)
        self.ticker = HistoryTicker(self.live, self.history, clock=clock)

        self.current_range = "live"
        self._bootstrapped = False

    # ---------- startup ----------
    def bootstrap(self):
        """Load prefs and history; seed the live buffer with recent history points."""
        if self._bootstrapped:
            return
        self.prefs = config.load_prefs(self.store)
        self.history.load()

        recent = self.history.since(self.clock() - config.BOOTSTRAP_WINDOW_MS)
        self.live.seed(recent[-config.BOOTSTRAP_MAX_POINTS:])
        self._bootstrapped = True

    def start(self):
        self.bootstrap()
        self.ticker.start()

    def shutdown(self):
        self.session.close()
        self.ticker.stop()
        self.raw_log.stop()

    # ---------- prefs ----------
    def set_live_window(self, ms):
        self.prefs.live_window_ms = int(ms)
        return config.save_prefs(self.store, self.prefs)

    def set_visibility(self, show_graph=None, show_raw=None):
        if show_graph is not None:
            self.prefs.show_graph = bool(show_graph)
        if show_raw is not None:
            self.prefs.show_raw = bool(show_raw)
        return config.save_prefs(self.store, self.prefs)

    # ---------- views ----------
    def range_spec(self, range_name=None):
        return parse_range(range_name or self.current_range, self.prefs.live_window_ms)

    def resolve(self, range_name=None):
        return self.view.resolve(self.range_spec(range_name))

    def export(self, path, range_name=None):
        """Write the resolved view as CSV; returns the number of rows."""
        result = self.resolve(range_name)
        n = export_csv(result, path)
        log.info("Exported %d rows (%s) to %s", n, range_name or self.current_range, path)
        return n

    def clear_view(self):
        self.live.clear()

    def clear_history(self):
        return self.history.clear()

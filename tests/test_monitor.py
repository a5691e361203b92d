import csv
import json
import os
import tempfile
import time
import unittest
from queue import Empty

import serial

from dht_monitor import config
from dht_monitor.buffers import HistoryStore, LiveBuffer, Sample
from dht_monitor.monitor import DataMonitor, HistoryTicker
from dht_monitor.session import EV_SAMPLE
from dht_monitor.storage import MemoryStore

NOW = 1_700_000_000_000
MIN = 60_000


def history_blob(timestamps):
    return json.dumps([{"ts": ts, "t": 20.0, "h": 50.0} for ts in timestamps])


def loop_opener(port, baud):
    return serial.serial_for_url("loop://", baudrate=baud, timeout=0.05)


class TestHistoryTicker(unittest.TestCase):

    def test_tick_offers_latest_live_sample(self):
        clock = [NOW]
        live = LiveBuffer()
        history = HistoryStore(MemoryStore(), save_interval_ms=MIN)
        ticker = HistoryTicker(live, history, clock=lambda: clock[0])

        self.assertFalse(ticker.tick())            # nothing received yet
        live.append(Sample(NOW - 1000, 21.0, 40.0))
        self.assertTrue(ticker.tick())
        clock[0] += 5000
        self.assertFalse(ticker.tick())            # within the save interval
        live.append(Sample(NOW + 4000, 22.0, 41.0))
        clock[0] = NOW + MIN
        self.assertTrue(ticker.tick())
        self.assertEqual([s.temp_c for s in history.all()], [21.0, 22.0])

    def test_background_thread(self):
        live = LiveBuffer()
        live.append(Sample(NOW, 21.0, 40.0))
        history = HistoryStore(MemoryStore(), save_interval_ms=0)
        ticker = HistoryTicker(live, history, period=0.01, clock=lambda: NOW)
        ticker.start()
        self.assertTrue(ticker.running)
        deadline = time.monotonic() + 2
        while len(history) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        ticker.stop()
        self.assertFalse(ticker.running)
        self.assertGreaterEqual(len(history), 2)


class TestDataMonitor(unittest.TestCase):

    def make_monitor(self, initial=None, **kw):
        store = MemoryStore(initial)
        kw.setdefault("probe_delay", None)
        kw.setdefault("opener", loop_opener)
        monitor = DataMonitor(store=store, clock=lambda: NOW, **kw)
        self.addCleanup(monitor.shutdown)
        return monitor

    def test_bootstrap_seeds_recent_history(self):
        stamps = [NOW - i * MIN for i in range(120, -1, -1)]   # last two hours
        monitor = self.make_monitor({config.HISTORY_KEY: history_blob(stamps)})
        monitor.bootstrap()

        self.assertEqual(len(monitor.history), 121)
        seeded = monitor.live.view_since(0)
        self.assertEqual(len(seeded), 31)
        self.assertEqual(seeded[0].ts, NOW - 30 * MIN)
        self.assertEqual(seeded[-1].ts, NOW)

    def test_bootstrap_caps_seed(self):
        stamps = [NOW - i * 1000 for i in range(1500, -1, -1)]
        monitor = self.make_monitor({config.HISTORY_KEY: history_blob(stamps)})
        monitor.bootstrap()
        seeded = monitor.live.view_since(0)
        self.assertEqual(len(seeded), config.BOOTSTRAP_MAX_POINTS)
        self.assertEqual(seeded[-1].ts, NOW)

    def test_bootstrap_loads_prefs(self):
        prefs = json.dumps({"showGraph": False, "showRaw": True, "liveWindowMs": 5 * MIN})
        monitor = self.make_monitor({config.PREFS_KEY: prefs})
        monitor.bootstrap()
        self.assertFalse(monitor.prefs.show_graph)
        self.assertEqual(monitor.range_spec("live").window_ms, 5 * MIN)

    def test_bootstrap_with_corrupt_store(self):
        monitor = self.make_monitor({config.HISTORY_KEY: "][", config.PREFS_KEY: "]["})
        monitor.bootstrap()
        self.assertEqual(len(monitor.history), 0)
        self.assertEqual(len(monitor.live), 0)
        self.assertEqual(monitor.prefs, config.Prefs())

    def test_seeded_history_is_not_stored_again(self):
        clock = [NOW]
        store = MemoryStore({config.HISTORY_KEY: history_blob([NOW - MIN])})
        monitor = DataMonitor(store=store, clock=lambda: clock[0], probe_delay=None)
        self.addCleanup(monitor.shutdown)
        monitor.bootstrap()
        self.assertEqual(len(monitor.live), 1)

        for _ in range(3):
            clock[0] += MIN
            self.assertFalse(monitor.ticker.tick())
        self.assertEqual([s.ts for s in monitor.history.all()], [NOW - MIN])

        monitor.live.append(Sample(clock[0], 23.0, 44.0))
        clock[0] += MIN
        self.assertTrue(monitor.ticker.tick())
        self.assertEqual([s.ts for s in monitor.history.all()], [NOW - MIN, NOW + 3 * MIN])

    def test_live_window_pref_drives_live_view(self):
        monitor = self.make_monitor()
        monitor.bootstrap()
        for i in range(10):
            monitor.live.append(Sample(NOW - i * 10_000, 20.0, 40.0))
        monitor.set_live_window(30_000)
        self.assertEqual(len(monitor.resolve("live")), 4)
        stored = json.loads(monitor.store.load(config.PREFS_KEY))
        self.assertEqual(stored["liveWindowMs"], 30_000)

    def test_set_visibility_persists(self):
        monitor = self.make_monitor()
        monitor.set_visibility(show_raw=True)
        stored = json.loads(monitor.store.load(config.PREFS_KEY))
        self.assertTrue(stored["showRaw"])
        self.assertTrue(stored["showGraph"])

    def test_export_history_range(self):
        stamps = [NOW - i * MIN for i in range(180, -1, -1)]   # three hours
        monitor = self.make_monitor({config.HISTORY_KEY: history_blob(stamps)})
        monitor.bootstrap()
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "export.csv")
            self.assertEqual(monitor.export(path, "1h"), 61)
            with open(path, newline="", encoding="utf-8") as f:
                rows = list(csv.reader(f))
        self.assertEqual(rows[0], ["time", "temp_c", "humidity_pct"])
        self.assertEqual(len(rows), 62)
        self.assertTrue(rows[-1][0].endswith("Z"))

    def test_clear_view_and_history(self):
        stamps = [NOW - i * MIN for i in range(5, -1, -1)]
        monitor = self.make_monitor({config.HISTORY_KEY: history_blob(stamps)})
        monitor.bootstrap()
        monitor.clear_view()
        self.assertEqual(len(monitor.live), 0)
        self.assertTrue(monitor.clear_history().ok)
        self.assertEqual(monitor.resolve("all").samples, [])
        self.assertIsNone(monitor.store.load(config.HISTORY_KEY))

    def test_end_to_end_serial_to_history(self):
        monitor = self.make_monitor()
        monitor.start()
        monitor.session.connect("loop://", 9600)
        port = monitor.session._ser
        port.write(b"21.0,4")
        time.sleep(0.15)
        port.write(b"5\n22.5,46\n")

        samples = []
        deadline = time.monotonic() + 3
        while len(samples) < 2 and time.monotonic() < deadline:
            try:
                kind, payload = monitor.events.get(timeout=0.1)
            except Empty:
                continue
            if kind == EV_SAMPLE:
                samples.append(payload)

        self.assertEqual([(s.temp_c, s.hum_pct) for s in samples], [(21.0, 45.0), (22.5, 46.0)])
        self.assertEqual(len(monitor.resolve("live")), 2)
        self.assertEqual(monitor.history.all(), [samples[0]])
        self.assertEqual(len(monitor.raw_log.lines), 2)

        monitor.shutdown()
        reloaded = HistoryStore(monitor.store)
        reloaded.load()
        self.assertEqual(reloaded.all(), [samples[0]])


if __name__ == "__main__":
    unittest.main()

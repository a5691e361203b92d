"""
session.py - one serial connection and its reader thread.

State: Disconnected -> Connecting -> Open -> Closing -> Disconnected

Everything the reader sees is posted to `events` as (kind, payload) tuples
so a UI thread can drain it:
  ("RAW", line)             every non-empty line
  ("INTERVAL", ms)          INTERVAL=<ms> / OK INTERVAL=<ms> acknowledgements
  ("SAMPLE", Sample)        decoded readings (already in the live buffer)
  ("STATUS", (state, msg))  state changes
  ("ERROR", msg)            open/read failures
"""
import threading
from enum import Enum
from queue import Queue

import serial
import serial.tools.list_ports

from . import config
from .buffers import now_ms
from .decoder import decode
from .errors import CommandError, TransportOpenError
from .framing import LineFramer
from .logging_cfg import get_logger
from .protocol import get_interval_command, parse_interval_ack, set_interval_command

log = get_logger(__name__)

EV_RAW = "RAW"
EV_INTERVAL = "INTERVAL"
EV_SAMPLE = "SAMPLE"
EV_STATUS = "STATUS"
EV_ERROR = "ERROR"


class SessionState(Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    OPEN = "Open"
    CLOSING = "Closing"


# ---------------- discovery ----------------
def list_ports():
    """[(device, label)] sorted by device name."""
    out = []
    for p in serial.tools.list_ports.comports():
        label = f"{p.device}  ({p.description})" if getattr(p, "description", None) else p.device
        out.append((p.device, label))
    out.sort(key=lambda x: x[0])
    return out


def open_serial(port, baud):
    # serial_for_url also accepts plain device names (COM3, /dev/ttyACM0)
    return serial.serial_for_url(port, baudrate=baud, timeout=config.READ_TIMEOUT_SEC)


class TransportSession:
    def __init__(self, live, history=None, raw_log=None, events=None, clock=None,
                 opener=open_serial, discover=list_ports,
                 probe_delay=config.INTERVAL_PROBE_DELAY_SEC,
                 join_timeout=config.CLOSE_JOIN_TIMEOUT_SEC):
        self.live = live
        self.history = history
        self.raw_log = raw_log
        self.events = events if events is not None else Queue()
        self.clock = clock or now_ms
        self.opener = opener
        self.discover = discover
        self.probe_delay = probe_delay
        self.join_timeout = join_timeout

        self.state = SessionState.DISCONNECTED
        self.port = None
        self.baud = None

        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._ser = None
        self._reader = None
        self._stop = threading.Event()

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    def _post(self, kind, payload):
        self.events.put((kind, payload))

    def _set_state(self, state, msg=""):
        with self._lock:
            self.state = state
        self._post(EV_STATUS, (state, msg))

    # ---------------- connect/disconnect ----------------
    def connect(self, port=None, baud=config.DEFAULT_BAUD):
        """
        Open `port` (first discovered port if None) and start reading.
        Raises TransportOpenError; the session is then Disconnected again.
        """
        with self._lock:
            if self.state is not SessionState.DISCONNECTED:
                raise TransportOpenError(f"Cannot connect while {self.state.value}")
            self.state = SessionState.CONNECTING
        self._post(EV_STATUS, (SessionState.CONNECTING, "Opening port..."))

        try:
            if port is None:
                ports = self.discover()
                if not ports:
                    raise TransportOpenError("No serial ports available")
                port = ports[0][0]
            ser = self.opener(port, baud)
        except (TransportOpenError, serial.SerialException, OSError, ValueError) as e:
            log.warning("Connection to %s failed: %s", port, e)
            self._post(EV_ERROR, f"Connection failed: {e}")
            self._set_state(SessionState.DISCONNECTED, f"Connection failed: {e}")
            if isinstance(e, TransportOpenError):
                raise
            raise TransportOpenError(str(e)) from e

        with self._lock:
            cancelled = self.state is not SessionState.CONNECTING
            if not cancelled:
                stop = threading.Event()
                self._stop = stop
                self._ser = ser
                self.port = port
                self.baud = baud
                self.state = SessionState.OPEN
                self._post(EV_STATUS, (SessionState.OPEN, f"Connected @ {baud} baud"))
                self._reader = threading.Thread(
                    target=self._read_loop, args=(ser, stop, LineFramer()),
                    name="serial-reader", daemon=True)
                self._reader.start()
        if cancelled:
            self._close_port(ser)
            raise TransportOpenError("Connection cancelled")

        log.info("Connected: %s @ %s", port, baud)

        if self.probe_delay is not None:
            threading.Thread(target=self._probe_interval, args=(stop,),
                             name="interval-probe", daemon=True).start()

    def close(self, reason="Disconnected"):
        """Tear down; every step is attempted even if an earlier one fails."""
        with self._lock:
            if self.state in (SessionState.DISCONNECTED, SessionState.CLOSING):
                return
            was_connecting = self.state is SessionState.CONNECTING
            self.state = SessionState.CLOSING
            ser, reader, stop = self._ser, self._reader, self._stop
        self._post(EV_STATUS, (SessionState.CLOSING, "Closing..."))

        stop.set()
        if ser is not None:
            cancel = getattr(ser, "cancel_read", None)
            if cancel is not None:
                try:
                    cancel()
                except Exception as e:
                    log.warning("cancel_read failed: %s", e)

        if reader is not None and reader is not threading.current_thread():
            reader.join(self.join_timeout)
            if reader.is_alive():
                log.warning("Reader did not stop within %.1fs, closing anyway", self.join_timeout)

        if ser is not None:
            self._close_port(ser)

        with self._lock:
            self._ser = None
            self._reader = None
        if was_connecting:
            reason = "Connection cancelled"
        log.info("Session closed: %s", reason)
        self._set_state(SessionState.DISCONNECTED, reason)

    def _close_port(self, ser):
        try:
            ser.close()
        except Exception as e:
            log.warning("Closing port failed: %s", e)

    # ---------------- serial I/O ----------------
    def _read_loop(self, ser, stop, framer):
        reason = "Disconnected"
        while not stop.is_set():
            try:
                chunk = ser.read(ser.in_waiting or 1)
                if not chunk:
                    continue
                for line in framer.feed(chunk):
                    self._handle_line(line)
            except (serial.SerialException, OSError) as e:
                if stop.is_set():
                    break
                log.warning("Read error: %s", e)
                self._post(EV_ERROR, f"Read error: {e}")
                reason = "Read error"
                break
            except Exception as e:
                log.exception("Reader stopped on unexpected error")
                self._post(EV_ERROR, f"Read error: {e}")
                reason = "Read error"
                break

        if not stop.is_set():
            self.close(reason)

    def _handle_line(self, line):
        if self.raw_log is not None and not self.raw_log.write(line):
            self._post(EV_ERROR, "Raw log write failed, logging stopped")
        self._post(EV_RAW, line)

        ms = parse_interval_ack(line)
        if ms is not None:
            self._post(EV_INTERVAL, ms)

        sample = decode(line, ts=self.clock())
        if sample is None:
            return
        self.live.append(sample)
        if self.history is not None:
            self.history.maybe_persist(sample, sample.ts)
        self._post(EV_SAMPLE, sample)

    def _probe_interval(self, stop):
        if stop.wait(self.probe_delay):
            return
        try:
            self.request_interval()
        except CommandError as e:
            log.debug("Interval probe not sent: %s", e)

    # ---------------- commands ----------------
    def send(self, text: str):
        """Write one command line. Raises CommandError when not connected or the write fails."""
        with self._lock:
            if self.state is not SessionState.OPEN or self._ser is None:
                raise CommandError("Not connected")
            ser = self._ser

        line = text if text.endswith("\n") else text + "\n"
        try:
            with self._write_lock:
                ser.write(line.encode("utf-8", errors="ignore"))
                ser.flush()
        except (serial.SerialException, OSError) as e:
            raise CommandError(f"Send failed: {e}") from e
        log.debug("TX %r", text)

    def request_interval(self):
        self.send(get_interval_command())

    def set_interval(self, ms):
        self.send(set_interval_command(ms))

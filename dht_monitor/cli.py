import argparse
import sys
import time
from pathlib import Path
from queue import Empty

from . import config
from .errors import CommandError, TransportOpenError
from .logging_cfg import enable_file_logging
from .monitor import DataMonitor
from .session import EV_ERROR, EV_INTERVAL, EV_SAMPLE, EV_STATUS, SessionState, list_ports
from .view import export_filename


def build_parser():
    p = argparse.ArgumentParser(prog="dht-monitor",
                                description="Live temperature/humidity monitor for a serial sensor.")
    p.add_argument("--data-dir", type=Path, default=config.DATA_DIR_DEFAULT,
                   help="history, prefs and log directory (default: %(default)s)")
    p.add_argument("--no-file-log", action="store_true", help="log to the console only")
    sub = p.add_subparsers(dest="command")

    g = sub.add_parser("gui", help="open the monitor window (default)")
    g.add_argument("--port", help="connect to this port on start")
    g.add_argument("--baud", type=int, default=config.DEFAULT_BAUD)

    r = sub.add_parser("run", help="headless: connect and print samples until Ctrl+C")
    r.add_argument("--port", help="serial port or pyserial URL (default: first port found)")
    r.add_argument("--baud", type=int, default=config.DEFAULT_BAUD)
    r.add_argument("--interval", type=int, help="send SET_INTERVAL <ms> after connecting")
    r.add_argument("--raw-log", type=Path, help="also write every received line to this file")

    sub.add_parser("ports", help="list serial ports")

    e = sub.add_parser("export", help="export stored history as CSV")
    e.add_argument("range", choices=[c for c in config.RANGE_CHOICES if c != "live"])
    e.add_argument("out", nargs="?", type=Path, help="output file (default: generated name)")
    return p


def cmd_ports(args):
    ports = list_ports()
    if not ports:
        print("No serial ports found.")
        return 1
    for _, label in ports:
        print(label)
    return 0


def cmd_export(args, monitor):
    monitor.bootstrap()
    out = args.out or Path(export_filename(args.range))
    n = monitor.export(out, args.range)
    print(f"{n} rows -> {out}")
    return 0


def cmd_run(args, monitor):
    monitor.start()
    if args.raw_log:
        try:
            monitor.raw_log.start(args.raw_log, append=True)
        except OSError as e:
            print(f"Cannot open raw log: {e}", file=sys.stderr)
            monitor.shutdown()
            return 2
    try:
        monitor.session.connect(args.port, args.baud)
    except TransportOpenError as e:
        print(f"Connect failed: {e}", file=sys.stderr)
        monitor.shutdown()
        return 2

    if args.interval is not None:
        # give the board time to come out of reset
        time.sleep(config.INTERVAL_PROBE_DELAY_SEC)
        try:
            monitor.session.set_interval(args.interval)
        except CommandError as e:
            print(f"Could not set interval: {e}", file=sys.stderr)

    try:
        while True:
            try:
                kind, payload = monitor.events.get(timeout=0.5)
            except Empty:
                continue
            if kind == EV_SAMPLE:
                print(f"{payload.ts}  {payload.temp_c:.1f} °C  {payload.hum_pct:.1f} %", flush=True)
            elif kind == EV_INTERVAL:
                print(f"interval: {payload} ms", flush=True)
            elif kind == EV_ERROR:
                print(f"error: {payload}", file=sys.stderr, flush=True)
            elif kind == EV_STATUS and payload[0] is SessionState.DISCONNECTED:
                print(payload[1] or "Disconnected", file=sys.stderr)
                return 1
    except KeyboardInterrupt:
        return 0
    finally:
        monitor.shutdown()


def main(argv=None):
    args = build_parser().parse_args(argv)
    if not args.no_file_log:
        enable_file_logging(args.data_dir)

    command = args.command or "gui"
    if command == "ports":
        return cmd_ports(args)

    monitor = DataMonitor(data_dir=args.data_dir)
    if command == "export":
        return cmd_export(args, monitor)
    if command == "run":
        return cmd_run(args, monitor)

    from . import app
    app.run(monitor, port=getattr(args, "port", None), baud=getattr(args, "baud", config.DEFAULT_BAUD))
    return 0

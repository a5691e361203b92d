import tkinter as tk
from tkinter import filedialog, messagebox, ttk
from datetime import datetime
from queue import Empty

import matplotlib
matplotlib.use("TkAgg")
import matplotlib.dates as mdates
import matplotlib.pyplot as plt
from matplotlib.backends.backend_tkagg import FigureCanvasTkAgg, NavigationToolbar2Tk

from . import config
from .errors import CommandError, TransportOpenError
from .rawlog import ts_hms_mmm
from .session import EV_ERROR, EV_INTERVAL, EV_RAW, EV_SAMPLE, EV_STATUS, SessionState, list_ports
from .view import export_filename

RAW_VIEW_MAX_LINES = 2000
EVENTS_PER_POLL = 300


def fmt_clock(ts_ms) -> str:
    return datetime.fromtimestamp(ts_ms / 1000.0).strftime("%H:%M:%S")


def fmt_delta(delta, unit) -> str:
    arrow = "▲" if delta >= 0 else "▼"
    return f"{arrow} {abs(delta):.1f} {unit} vs avg"


def window_label(ms) -> str:
    if ms % 60_000 == 0:
        return f"{ms // 60_000} min"
    return f"{ms // 1000} s"


class MonitorApp:
    def __init__(self, root, monitor, port=None, baud=config.DEFAULT_BAUD):
        self.root = root
        self.monitor = monitor
        self.root.title("DHT Live Monitor (temperature / humidity)")
        self.root.geometry("1300x860")

        self.port_map = {}  # label -> device
        self._dirty = True

        self._build_ui(baud)
        self._refresh_ports()
        if port:
            self.port_label_var.set(port)
        self._apply_prefs_to_ui()
        self._auto_refresh_ports()
        self.refresh_view()
        self._ui_loop()

    # ---------------- UI ----------------
    def _build_ui(self, baud):
        style = ttk.Style()
        try:
            style.theme_use("clam")
        except tk.TclError:
            pass

        top = ttk.Frame(self.root, padding=10)
        top.pack(fill=tk.X)

        ttk.Label(top, text="Port:").pack(side=tk.LEFT)
        self.port_label_var = tk.StringVar(value="")
        self.port_combo = ttk.Combobox(top, textvariable=self.port_label_var, width=34)
        self.port_combo.pack(side=tk.LEFT, padx=(6, 6))
        ttk.Button(top, text="Refresh", command=self._refresh_ports).pack(side=tk.LEFT, padx=(0, 14))

        ttk.Label(top, text="Baud:").pack(side=tk.LEFT)
        self.baud_var = tk.StringVar(value=str(baud))
        ttk.Combobox(top, textvariable=self.baud_var, width=10,
                     values=[str(b) for b in config.DEFAULT_BAUDS]).pack(side=tk.LEFT, padx=(6, 14))

        self.conn_btn = ttk.Button(top, text="Connect", command=self._toggle_connect)
        self.conn_btn.pack(side=tk.LEFT, padx=(0, 14))

        self.status_var = tk.StringVar(value="Disconnected")
        ttk.Label(top, textvariable=self.status_var).pack(side=tk.LEFT, fill=tk.X, expand=True)

        # readouts
        cards = ttk.Frame(self.root, padding=(10, 0, 10, 8))
        cards.pack(fill=tk.X)

        self.temp_var = tk.StringVar(value="--")
        self.hum_var = tk.StringVar(value="--")
        self.updated_var = tk.StringVar(value="Updated —")
        self.temp_avg_var = tk.StringVar(value="—")
        self.hum_avg_var = tk.StringVar(value="—")
        self.temp_delta_var = tk.StringVar(value="")
        self.hum_delta_var = tk.StringVar(value="")

        big = ("TkDefaultFont", 22, "bold")
        for title, val, avg, delta in (
            ("Temperature (°C)", self.temp_var, self.temp_avg_var, self.temp_delta_var),
            ("Humidity (%)", self.hum_var, self.hum_avg_var, self.hum_delta_var),
        ):
            box = ttk.LabelFrame(cards, text=title, padding=8)
            box.pack(side=tk.LEFT, padx=(0, 10))
            ttk.Label(box, textvariable=val, font=big).pack(side=tk.LEFT, padx=(0, 12))
            ttk.Label(box, text="avg").pack(side=tk.LEFT)
            ttk.Label(box, textvariable=avg).pack(side=tk.LEFT, padx=(4, 10))
            ttk.Label(box, textvariable=delta).pack(side=tk.LEFT)

        ttk.Label(cards, textvariable=self.updated_var).pack(side=tk.LEFT, padx=(10, 0))

        # view controls
        opts = ttk.Frame(self.root, padding=(10, 0, 10, 8))
        opts.pack(fill=tk.X)

        ttk.Label(opts, text="Range:").pack(side=tk.LEFT)
        self.range_var = tk.StringVar(value=self.monitor.current_range)
        self.range_combo = ttk.Combobox(opts, textvariable=self.range_var, width=6, state="readonly",
                                        values=config.RANGE_CHOICES)
        self.range_combo.pack(side=tk.LEFT, padx=(6, 14))
        self.range_combo.bind("<<ComboboxSelected>>", lambda e: self._on_range_change())

        self.live_window_frame = ttk.Frame(opts)
        self.live_window_frame.pack(side=tk.LEFT, padx=(0, 14))
        ttk.Label(self.live_window_frame, text="Window:").pack(side=tk.LEFT)
        self._window_by_label = {window_label(ms): ms for ms in config.LIVE_WINDOW_CHOICES_MS}
        self.live_window_var = tk.StringVar()
        win_combo = ttk.Combobox(self.live_window_frame, textvariable=self.live_window_var, width=8,
                                 state="readonly", values=list(self._window_by_label))
        win_combo.pack(side=tk.LEFT, padx=(6, 0))
        win_combo.bind("<<ComboboxSelected>>", lambda e: self._on_live_window_change())

        self.show_graph_var = tk.BooleanVar(value=True)
        self.show_raw_var = tk.BooleanVar(value=False)
        ttk.Checkbutton(opts, text="Graph", variable=self.show_graph_var,
                        command=self._on_visibility_change).pack(side=tk.LEFT, padx=(0, 10))
        ttk.Checkbutton(opts, text="Raw log", variable=self.show_raw_var,
                        command=self._on_visibility_change).pack(side=tk.LEFT, padx=(0, 14))

        ttk.Button(opts, text="Export CSV…", command=self.export_csv).pack(side=tk.LEFT, padx=4)

        # settings
        settings = ttk.LabelFrame(self.root, text="Device / data", padding=(10, 4))
        settings.pack(fill=tk.X, padx=10, pady=(0, 8))

        ttk.Label(settings, text="Sample interval (ms):").pack(side=tk.LEFT)
        self.interval_var = tk.StringVar(value=str(config.MIN_INTERVAL_MS))
        ttk.Entry(settings, textvariable=self.interval_var, width=8).pack(side=tk.LEFT, padx=(6, 6))
        ttk.Button(settings, text="Apply", command=self._apply_interval).pack(side=tk.LEFT, padx=(0, 14))

        ttk.Button(settings, text="Clear view", command=self._clear_view).pack(side=tk.LEFT, padx=4)
        ttk.Button(settings, text="Clear history", command=self._clear_history).pack(side=tk.LEFT, padx=4)

        self.start_log_btn = ttk.Button(settings, text="Start log…", command=self._start_log)
        self.start_log_btn.pack(side=tk.LEFT, padx=(14, 4))
        self.stop_log_btn = ttk.Button(settings, text="Stop log", command=self._stop_log, state=tk.DISABLED)
        self.stop_log_btn.pack(side=tk.LEFT, padx=4)
        self.append_var = tk.BooleanVar(value=False)
        ttk.Checkbutton(settings, text="Append", variable=self.append_var).pack(side=tk.LEFT, padx=4)

        # chart + raw panels
        self.body = ttk.Frame(self.root, padding=(10, 0, 10, 10))
        self.body.pack(fill=tk.BOTH, expand=True)

        self.chart_panel = ttk.Frame(self.body)

        plt.style.use("seaborn-v0_8-whitegrid")
        self.fig, self.ax_t = plt.subplots(figsize=(10, 5))
        self.ax_h = self.ax_t.twinx()
        (self.temp_line,) = self.ax_t.plot([], [], lw=1.8, color="#EF4444", label="Temp (°C)")
        (self.hum_line,) = self.ax_h.plot([], [], lw=1.8, color="#3B82F6", label="Humidity (%)")
        self.ax_t.set_ylabel("Temp (°C)")
        self.ax_h.set_ylabel("Hum (%)")
        self.ax_h.grid(False)
        self.ax_t.xaxis.set_major_formatter(mdates.DateFormatter("%H:%M:%S"))
        self.ax_t.legend(handles=[self.temp_line, self.hum_line], loc="upper left")

        self.canvas = FigureCanvasTkAgg(self.fig, master=self.chart_panel)
        self.canvas.get_tk_widget().pack(fill=tk.BOTH, expand=True)
        self.toolbar = NavigationToolbar2Tk(self.canvas, self.chart_panel, pack_toolbar=False)
        self.toolbar.update()
        self.toolbar.pack(side=tk.BOTTOM, fill=tk.X)

        self.raw_panel = ttk.Frame(self.body)
        raw_btns = ttk.Frame(self.raw_panel)
        raw_btns.pack(fill=tk.X)
        self.autoscroll_var = tk.BooleanVar(value=True)
        ttk.Checkbutton(raw_btns, text="Auto-scroll", variable=self.autoscroll_var).pack(side=tk.LEFT)
        ttk.Button(raw_btns, text="Copy", command=self._copy_raw).pack(side=tk.LEFT, padx=4)
        ttk.Button(raw_btns, text="Clear", command=self._clear_raw).pack(side=tk.LEFT, padx=4)

        self.text = tk.Text(self.raw_panel, wrap="none", width=48)
        self.text.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
        yscroll = ttk.Scrollbar(self.raw_panel, orient="vertical", command=self.text.yview)
        yscroll.pack(side=tk.RIGHT, fill=tk.Y)
        self.text.configure(yscrollcommand=yscroll.set)

    def _apply_prefs_to_ui(self):
        prefs = self.monitor.prefs
        self.show_graph_var.set(prefs.show_graph)
        self.show_raw_var.set(prefs.show_raw)
        self.live_window_var.set(window_label(prefs.live_window_ms))
        self._layout_panels()
        self._layout_range_controls()

    def _layout_panels(self):
        self.chart_panel.pack_forget()
        self.raw_panel.pack_forget()
        if self.show_graph_var.get():
            self.chart_panel.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
        if self.show_raw_var.get():
            self.raw_panel.pack(side=tk.RIGHT, fill=tk.BOTH, expand=not self.show_graph_var.get())

    def _layout_range_controls(self):
        if self.range_var.get() == "live":
            self.live_window_frame.pack(side=tk.LEFT, padx=(0, 14), after=self.range_combo)
        else:
            self.live_window_frame.pack_forget()

    # ---------------- port list ----------------
    def _refresh_ports(self):
        ports = list_ports()
        labels = [lbl for _, lbl in ports]
        self.port_map = {lbl: dev for dev, lbl in ports}
        self.port_combo["values"] = labels
        if labels and self.port_label_var.get() not in labels and not self.port_label_var.get():
            self.port_label_var.set(labels[0])

    def _auto_refresh_ports(self):
        if not self.monitor.session.is_open:
            self._refresh_ports()
        self.root.after(2000, self._auto_refresh_ports)

    # ---------------- connect/disconnect ----------------
    def _toggle_connect(self):
        if self.monitor.session.state is SessionState.DISCONNECTED:
            self._connect()
        else:
            self.monitor.session.close()

    def _connect(self):
        lbl = self.port_label_var.get().strip()
        port = self.port_map.get(lbl, lbl.split()[0] if lbl else None)

        try:
            baud = int(self.baud_var.get().strip())
        except ValueError:
            messagebox.showwarning("Bad baud", "Enter a valid baudrate (e.g. 9600).")
            return

        try:
            self.monitor.session.connect(port, baud)
        except TransportOpenError as e:
            messagebox.showerror("Connect failed", str(e))

    # ---------------- commands ----------------
    def _apply_interval(self):
        try:
            v = max(config.MIN_INTERVAL_MS, int(float(self.interval_var.get() or 0)))
        except ValueError:
            v = config.MIN_INTERVAL_MS
        self.interval_var.set(str(v))
        try:
            self.monitor.session.set_interval(v)
        except CommandError as e:
            self.status_var.set(f"Failed to set interval: {e}")
            return
        self.status_var.set(f"Set interval to {v}ms")

    # ---------------- data actions ----------------
    def _clear_view(self):
        self.monitor.clear_view()
        self.temp_var.set("--")
        self.hum_var.set("--")
        self.updated_var.set("Updated —")
        self.refresh_view()

    def _clear_history(self):
        if not messagebox.askyesno("Clear history", "Delete the stored 7-day history?"):
            return
        res = self.monitor.clear_history()
        if not res.ok:
            self.status_var.set(f"History delete failed: {res.error}")
        self.refresh_view()

    def export_csv(self):
        rng = self.range_var.get()
        path = filedialog.asksaveasfilename(
            title="Export CSV",
            defaultextension=".csv",
            initialfile=export_filename(rng),
            filetypes=[("CSV files", "*.csv"), ("All files", "*.*")]
        )
        if not path:
            return
        try:
            n = self.monitor.export(path, rng)
        except OSError as e:
            messagebox.showerror("Export failed", str(e))
            return
        self.status_var.set(f"Exported {n} rows")

    def _start_log(self):
        path = filedialog.asksaveasfilename(
            title="Save raw log file",
            defaultextension=".txt",
            filetypes=[("Text files", "*.txt"), ("Log files", "*.log"), ("All files", "*.*")]
        )
        if not path:
            return
        try:
            self.monitor.raw_log.start(path, append=self.append_var.get())
        except OSError as e:
            messagebox.showerror("File error", str(e))
            return
        self.start_log_btn.configure(state=tk.DISABLED)
        self.stop_log_btn.configure(state=tk.NORMAL)

    def _stop_log(self):
        self.monitor.raw_log.stop()
        self.start_log_btn.configure(state=tk.NORMAL)
        self.stop_log_btn.configure(state=tk.DISABLED)

    # ---------------- view controls ----------------
    def _on_range_change(self):
        self.monitor.current_range = self.range_var.get()
        self._layout_range_controls()
        self.refresh_view()

    def _on_live_window_change(self):
        ms = self._window_by_label.get(self.live_window_var.get(), config.DEFAULT_LIVE_WINDOW_MS)
        self.monitor.set_live_window(ms)
        if self.monitor.current_range == "live":
            self.refresh_view()

    def _on_visibility_change(self):
        raw_was_shown = self.monitor.prefs.show_raw
        self.monitor.set_visibility(self.show_graph_var.get(), self.show_raw_var.get())
        if self.show_raw_var.get() and not raw_was_shown:
            # lines received while hidden are kept in the raw log tail
            self.text.delete("1.0", tk.END)
            tail = self.monitor.raw_log.text()
            if tail:
                self._append_text(tail)
        self._layout_panels()

    # ---------------- raw log ----------------
    def _append_text(self, s: str):
        self.text.insert(tk.END, s + "\n")
        excess = int(self.text.index("end-1c").split(".")[0]) - RAW_VIEW_MAX_LINES
        if excess > 0:
            self.text.delete("1.0", f"{excess + 1}.0")
        if self.autoscroll_var.get():
            self.text.see(tk.END)

    def _copy_raw(self):
        self.root.clipboard_clear()
        self.root.clipboard_append(self.text.get("1.0", "end-1c"))
        self.status_var.set("Raw copied")

    def _clear_raw(self):
        self.text.delete("1.0", tk.END)
        self.monitor.raw_log.clear()

    # ---------------- plotting ----------------
    def refresh_view(self):
        result = self.monitor.resolve()
        xs = [datetime.fromtimestamp(s.ts / 1000.0) for s in result.samples]
        self.temp_line.set_data(xs, [s.temp_c for s in result.samples])
        self.hum_line.set_data(xs, [s.hum_pct for s in result.samples])

        if xs and not getattr(self.toolbar, "mode", ""):
            for ax in (self.ax_t, self.ax_h):
                ax.relim()
                ax.autoscale_view()
            if xs[0] == xs[-1]:
                self.ax_t.set_xlim(mdates.date2num(xs[0]) - 1e-5, mdates.date2num(xs[-1]) + 1e-5)
        self.canvas.draw_idle()

        if not result.samples:
            self.temp_avg_var.set("—")
            self.hum_avg_var.set("—")
            self.temp_delta_var.set("")
            self.hum_delta_var.set("")
        else:
            self.temp_avg_var.set(f"{result.temp_avg:.1f} °C")
            self.hum_avg_var.set(f"{result.hum_avg:.1f} %")
            self.temp_delta_var.set(fmt_delta(result.temp_delta, "°C"))
            self.hum_delta_var.set(fmt_delta(result.hum_delta, "%"))
            if self.monitor.current_range != "live":
                self.updated_var.set(f"Updated {fmt_clock(result.last_ts)}")
        self._dirty = False

    # ---------------- UI update loop ----------------
    def _handle_event(self, kind, payload):
        if kind == EV_RAW:
            if self.show_raw_var.get():
                self._append_text(f"{ts_hms_mmm()} {payload}")
        elif kind == EV_SAMPLE:
            self.temp_var.set(f"{payload.temp_c:.1f}")
            self.hum_var.set(f"{payload.hum_pct:.1f}")
            self.updated_var.set(f"Updated {fmt_clock(payload.ts)}")
            self._dirty = True
        elif kind == EV_INTERVAL:
            self.interval_var.set(str(payload))
            self.status_var.set(f"Interval: {payload}ms")
        elif kind == EV_STATUS:
            state, msg = payload
            self.status_var.set(msg or state.value)
            self.conn_btn.configure(text="Connect" if state is SessionState.DISCONNECTED else "Disconnect")
        elif kind == EV_ERROR:
            self.status_var.set(f"ERROR: {payload}")
            if self.show_raw_var.get():
                self._append_text(f"[{datetime.now():%H:%M:%S}] ERROR: {payload}")

    def _ui_loop(self):
        for _ in range(EVENTS_PER_POLL):
            try:
                kind, payload = self.monitor.events.get_nowait()
            except Empty:
                break
            self._handle_event(kind, payload)

        if self._dirty:
            self.refresh_view()

        self.root.after(config.UI_POLL_MS, self._ui_loop)


def run(monitor, port=None, baud=config.DEFAULT_BAUD):
    monitor.start()
    root = tk.Tk()
    app = MonitorApp(root, monitor, port=port, baud=baud)

    def on_close():
        monitor.shutdown()
        root.destroy()

    root.protocol("WM_DELETE_WINDOW", on_close)
    if port:
        app._connect()
    root.mainloop()

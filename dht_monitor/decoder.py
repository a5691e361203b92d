"""
decoder.py - turn one device line into a (temperature, humidity) sample.

Formats are tried in order, first one giving two finite numbers wins:
  1. {"temp": 21.5, "hum": 48}          (also temperature/t, humidity/h)
  2. 21.5,48
  3. Temp: 21.5 Hum=48                  (case-insensitive)
"""
import json
import math
import re

from .buffers import Sample, now_ms
from .logging_cfg import get_logger

log = get_logger(__name__)

TEMP_KEYS = ("temp", "temperature", "t")
HUM_KEYS = ("hum", "humidity", "h")

_NUM = r"([-+]?(?:\d+(?:\.\d*)?|\.\d+))"
TEMP_RE = re.compile(r"temp\s*[:=]\s*" + _NUM, re.IGNORECASE)
HUM_RE = re.compile(r"hum(?:idity)?\s*[:=]\s*" + _NUM, re.IGNORECASE)


def safe_float(x):
    if x is None or isinstance(x, bool):
        return None
    try:
        s = str(x).strip()
        if s == "" or s.lower() in ("nan", "none"):
            return None
        v = float(s)
    except ValueError:
        return None
    return v if math.isfinite(v) else None


def _first_present(obj, keys):
    for k in keys:
        if obj.get(k) is not None:
            return obj[k]
    return None


# ---------- strategies: line -> (temp, hum) or None ----------
def decode_structured(line: str):
    if not (line.startswith("{") and line.endswith("}")):
        return None
    try:
        obj = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(obj, dict):
        return None
    t = safe_float(_first_present(obj, TEMP_KEYS))
    h = safe_float(_first_present(obj, HUM_KEYS))
    if t is None or h is None:
        return None
    return t, h


def decode_delimited(line: str):
    if "," not in line:
        return None
    parts = line.split(",")
    t = safe_float(parts[0])
    h = safe_float(parts[1])
    if t is None or h is None:
        return None
    return t, h


def decode_tagged(line: str):
    if "temp" not in line.lower():
        return None
    m_t = TEMP_RE.search(line)
    m_h = HUM_RE.search(line)
    if not m_t or not m_h:
        return None
    t = safe_float(m_t.group(1))
    h = safe_float(m_h.group(1))
    if t is None or h is None:
        return None
    return t, h


STRATEGIES = (decode_structured, decode_delimited, decode_tagged)


def decode_reading(line: str, strategies=STRATEGIES):
    for strategy in strategies:
        pair = strategy(line)
        if pair is not None:
            return pair
    return None


def decode(line: str, ts=None, strategies=STRATEGIES):
    """
    Return a Sample stamped with ts (epoch ms, default: now) or None.
    Never raises on malformed input.
    """
    if not line:
        return None
    pair = decode_reading(line, strategies)
    if pair is None:
        log.debug("Not a sample: %r", line)
        return None
    return Sample(now_ms() if ts is None else ts, pair[0], pair[1])

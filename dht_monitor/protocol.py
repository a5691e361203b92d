import re

from . import config
from .errors import CommandError

GET_INTERVAL = "GET_INTERVAL"
SET_INTERVAL = "SET_INTERVAL"

ACK_PREFIXES = ("INTERVAL=", "OK INTERVAL=")
INTERVAL_RE = re.compile(r"INTERVAL=(\d+)")


def get_interval_command() -> str:
    return GET_INTERVAL


def set_interval_command(ms) -> str:
    """SET_INTERVAL <ms>, clamped to the device minimum."""
    try:
        v = int(float(ms))
    except (TypeError, ValueError, OverflowError):
        raise CommandError(f"Invalid interval: {ms!r}") from None
    v = max(config.MIN_INTERVAL_MS, v)
    return f"{SET_INTERVAL} {v}"


def parse_interval_ack(line: str):
    """Return the reported sampling interval in ms for INTERVAL=/OK INTERVAL= lines, else None."""
    if not line.startswith(ACK_PREFIXES):
        return None
    m = INTERVAL_RE.search(line)
    if not m:
        return None
    return int(m.group(1))

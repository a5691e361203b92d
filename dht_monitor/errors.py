class MonitorError(Exception):
    """Base class for errors surfaced to the caller."""


class TransportOpenError(MonitorError):
    """Device unavailable, busy or permission denied while opening."""


class CommandError(MonitorError):
    """A device command could not be sent (not connected, bad value, write failed)."""

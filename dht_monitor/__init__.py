"""Live temperature/humidity monitor for a line-oriented serial sensor."""

__version__ = "0.3.0"

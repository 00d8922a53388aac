"""vidforge: video transformation pipeline with live progress sessions."""

__version__ = "0.1.0"

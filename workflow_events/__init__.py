"""Event-driven workflow trigger pipeline."""

__version__ = "0.1.0"

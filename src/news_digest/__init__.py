"""Daily news digest built by a resumable, batch-claiming task engine."""

__version__ = "0.1.0"

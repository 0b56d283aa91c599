"""Return Desk: product return lifecycle service."""

__version__ = "1.0.0"

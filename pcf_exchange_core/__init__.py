"""PCF data exchange with partner systems."""

__version__ = "0.1.0"

"""HTTP-only launcher for the vehicle command proxy."""

__version__ = "0.1.0"

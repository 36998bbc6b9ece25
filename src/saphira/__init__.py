"""Saphira - interest-driven knowledge collection engine."""

__version__ = "0.1.0"

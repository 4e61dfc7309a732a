"""Carry Ethernet frames over DNS queries and TXT answers."""

__version__ = "0.1.0"
__all__ = ["__version__"]
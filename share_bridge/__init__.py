"""Dexcom Share Bridge.

Mirrors glucose readings from one Dexcom Share account to another.
"""

__version__ = "1.0.0"

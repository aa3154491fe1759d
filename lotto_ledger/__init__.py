"""Lottery accounting core: commission resolution, settlement, carry-forward and monthly closing."""

__version__ = "1.0.0"

"""Flotilla -- per-step, collision-free navigation for fleets of circular agents."""

__version__ = "0.1.0"

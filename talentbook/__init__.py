"""Scheduling and lifecycle engine for a streamer talent-booking marketplace."""

__version__ = "0.1.0"

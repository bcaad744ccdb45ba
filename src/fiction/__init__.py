"""Collaborative fiction: stories written one hidden snippet at a time."""

__version__ = "0.1.0"

"""Availability and conflict-free booking engine."""

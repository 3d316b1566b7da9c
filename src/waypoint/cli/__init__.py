"""Command-line interface (``waypoint``)."""

from waypoint.cli.app import app

__all__ = ["app"]

"""Trackwise Core - project tracking backend with hierarchical work items."""

__version__ = "1.0.0"

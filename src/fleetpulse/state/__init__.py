"""State/store layer.

This package is the single source of truth for how normalized location
and fault records are merged into per-asset state, and how those changes
are published to live subscribers.
"""

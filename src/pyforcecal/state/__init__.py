"""State/store layer.

This package is the single place calendar state changes: it mirrors the
engine's authoritative event collection and navigation state, and turns
every transition into ordered change notifications.
"""

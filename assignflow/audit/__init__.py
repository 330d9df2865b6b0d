"""Append-only audit trail for routing administration and delegation changes."""

"""Read-only aggregates over recorded assignment outcomes."""

"""Local/remote reconciliation."""

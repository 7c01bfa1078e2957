"""Local database plumbing."""

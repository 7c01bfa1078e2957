"""Local certificate storage."""

"""Hosted backend client."""

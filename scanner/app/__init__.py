"""Halal product scanner service."""

"""Helpers shared across the media, content, and backup domains."""

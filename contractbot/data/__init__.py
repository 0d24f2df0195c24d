"""Bundled word frequency data."""

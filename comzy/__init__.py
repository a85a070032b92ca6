"""Comzy - secure tunnel to localhost."""

__version__ = "1.0.0"

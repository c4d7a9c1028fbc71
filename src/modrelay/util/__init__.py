"""Utility helpers shared across Modrelay (logging, formatting)."""

"""Pseudonymous user handles."""

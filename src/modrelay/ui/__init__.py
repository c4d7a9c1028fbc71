"""Operator-facing interfaces (interactive admin console)."""

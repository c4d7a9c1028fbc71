"""Records, result types and identifier validators used by the moderation core."""

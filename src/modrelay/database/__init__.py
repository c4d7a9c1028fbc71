"""
Database package for Modrelay.

SQLite storage for bans and submissions behind a single shared connection.

Public API:
    - Database: owns the connection and exposes ``bans`` and ``messages``
    - BanStore / MessageStore: the two stores the moderation engine composes
"""

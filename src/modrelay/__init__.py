"""
Modrelay - Anonymous Reply Moderation Gateway

Modrelay sits between a chat platform and a public discussion thread. Users
submit replies anonymously; moderators approve, deny, or ban the submitter
before anything is published.

Core Components:

- **Identity Hashing**: Irreversible, salted PBKDF2 handles replace platform
  user ids everywhere in storage and logs
- **Case Allocation**: Short random numeric case ids for bans that grow in
  width as the ban list fills up
- **Stores**: SQLite-backed ban and submission tables with uniqueness and
  conditional status writes carrying the concurrency guarantees
- **Moderation Engine**: Intake, approve/deny, ban/re-ban/unban workflows
- **Interactive Console**: Live administration of bans and submissions

Usage:
    from modrelay.main import main
    main()  # Opens the store and starts the admin console
"""

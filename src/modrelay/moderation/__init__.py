"""
Moderation workflows.

- case_allocator: random, width-escalating case ids for bans
- moderation_engine: intake, approve/deny, ban/re-ban/unban
- moderation_commands: platform-agnostic admin commands over the engine
"""

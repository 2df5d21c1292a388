"""Verification case lifecycle.

- state machine (which moderator actions are legal from which status)
- security action service (open or merge a case per suspicion)
- moderation actuator (verify/ban/reopen/thread against the platform)
"""

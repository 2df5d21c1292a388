from __future__ import annotations


class WardenError(Exception):
    """Base class for domain errors surfaced to moderators."""


class CaseNotFoundError(WardenError):
    def __init__(self, case_id: int) -> None:
        super().__init__(f"Verification case #{case_id} does not exist")
        self.case_id = case_id


class InvalidTransitionError(WardenError):
    """A status change was requested from a state that does not allow it."""

    def __init__(self, case_id: int, current: str, action: str, message: str | None = None) -> None:
        super().__init__(message or f"Cannot {action.lower()} case #{case_id}: it is {current}")
        self.case_id = case_id
        self.current = current
        self.action = action


class ActiveCaseExistsError(InvalidTransitionError):
    """Reopening would leave the member with two pending cases."""

    def __init__(self, case_id: int, current: str, active_case_id: int) -> None:
        super().__init__(
            case_id,
            current,
            "REOPEN",
            f"Cannot reopen case #{case_id}: case #{active_case_id} is already pending for this member",
        )
        self.active_case_id = active_case_id


class ConfigurationError(WardenError):
    """A server is missing a setting that an action needs."""


class ClassifierError(WardenError):
    """The AI classifier failed, timed out, or returned something unusable."""

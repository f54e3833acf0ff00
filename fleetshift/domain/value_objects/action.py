"""
Action Value Object

Architectural Intent:
- The lifecycle action selected once per run
- Parses user-supplied mode strings, including the short aliases
"""

from enum import Enum

from fleetshift.domain.exceptions import InvalidActionError


class Action(Enum):
    UPGRADE = "upgrade"
    ADD = "add"
    DELETE_ROLLBACK = "delete-rollback"
    ROLLBACK = "rollback"
    RESUME_UPGRADE = "resume-upgrade"

    @property
    def brackets_with_stop_start(self) -> bool:
        """Whether the software is stopped before and started after the action."""
        return self not in (Action.ADD, Action.DELETE_ROLLBACK)

    @property
    def is_upgrade(self) -> bool:
        return self in (Action.UPGRADE, Action.RESUME_UPGRADE)

    @staticmethod
    def parse(mode: str) -> "Action":
        normalized = (mode or "").strip().lower()
        action = _ALIASES.get(normalized)
        if action is None:
            valid = ", ".join(a.value for a in Action)
            raise InvalidActionError(f"Invalid mode {mode!r}. Valid modes: {valid}")
        return action

    def __str__(self) -> str:
        return self.value


_ALIASES = {
    "upgrade": Action.UPGRADE,
    "add": Action.ADD,
    "delete": Action.DELETE_ROLLBACK,
    "delete-rollback": Action.DELETE_ROLLBACK,
    "rollback": Action.ROLLBACK,
    "resume": Action.RESUME_UPGRADE,
    "resume-upgrade": Action.RESUME_UPGRADE,
}

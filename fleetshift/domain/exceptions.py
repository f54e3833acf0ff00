"""
Domain Exceptions

Architectural Intent:
- Single hierarchy for every failure FleetShift reports
- Precondition failures (PreflightError, StateFileError, InvalidActionError,
  TopologyError) abort a run before any remote mutation
- RemoteError subclasses isolate a single (node, software) pair and never
  abort the surrounding loop
"""

from __future__ import annotations
from typing import Iterable


class FleetShiftError(Exception):
    """Base class for all FleetShift errors."""


class PreflightError(FleetShiftError):
    """One or more pre-flight checks failed.

    Holds every distinct message so the caller can print them together.
    """

    def __init__(self, messages: Iterable[str], summary: str = "Pre-flight verification failed") -> None:
        self.messages = list(dict.fromkeys(messages))
        self.summary = summary
        super().__init__(self.report())

    def report(self) -> str:
        return "\n".join([f"{self.summary}:"] + [f"  {m}" for m in self.messages])


class StateFileError(FleetShiftError):
    """A persisted run-state file is missing or cannot be parsed."""


class InvalidActionError(FleetShiftError):
    """The requested action is not one of the supported lifecycle actions."""


class TopologyError(FleetShiftError):
    """The topology document is malformed or inconsistent."""


class RemoteError(FleetShiftError):
    """Base class for failures talking to a remote host."""


class RemoteConnectionError(RemoteError):
    pass


class RemoteAuthenticationError(RemoteError):
    pass


class NoSessionError(RemoteError):
    """No connection is open and automatic opening is disabled."""


class RemoteCommandError(RemoteError):
    def __init__(self, command: str, exit_status: int, stdout: str = "", stderr: str = "") -> None:
        self.command = command
        self.exit_status = exit_status
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip()
        message = f"Command {command!r} exited with status {exit_status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidPermissionsError(RemoteError):
    pass


class CopySizeMismatchError(RemoteError):
    def __init__(self, written: int, expected: int) -> None:
        self.written = written
        self.expected = expected
        super().__init__(f"Copied size: {written} not equal to file size: {expected}")

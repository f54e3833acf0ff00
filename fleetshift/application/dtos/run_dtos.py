"""
Run DTOs

Architectural Intent:
- Data Transfer Objects for the lifecycle run use case boundary
- Input validation at the application boundary
- Decouples CLI/config representation from the engine
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from fleetshift.domain.value_objects.action import Action


class RunStatus(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RunRequest:
    action: Union[Action, str]
    dry_run: bool = True
    verify_files: bool = True
    verify_nodes: bool = True
    verify_target_dirs: bool = True
    rollback_suffix: str = ""
    ssh_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if not isinstance(self.action, Action):
            object.__setattr__(self, "action", Action.parse(self.action))
        if not self.rollback_suffix:
            raise ValueError("rollback_suffix cannot be empty")
        if self.ssh_timeout is not None and self.ssh_timeout <= 0:
            raise ValueError(f"ssh_timeout must be positive, got {self.ssh_timeout}")


@dataclass(frozen=True)
class PairFailure:
    node: str
    software: str
    stage: str
    error: str

    def __str__(self) -> str:
        return f"Node: {self.node}, software: {self.software}, {self.stage} failed: {self.error}"


@dataclass(frozen=True)
class RunResult:
    action: Action
    status: RunStatus
    processed: int = 0
    failures: tuple[PairFailure, ...] = field(default_factory=tuple)
    pending_upgrades: int = 0
    rollback_eligible: int = 0

    @property
    def completed(self) -> bool:
        return self.status == RunStatus.COMPLETED

    def summary(self) -> str:
        return f"{self.action} {self.status}"

"""
Topology Module

Architectural Intent:
- Read-only model of what runs where: ordered software groups, the nodes in
  each group, and per (node, software) operation descriptors
- Group order and node order within a group are the execution order
- Built by the topology loader; never mutated during a run
"""

from __future__ import annotations
import posixpath
import re
from dataclasses import dataclass, field
from typing import Iterator, Optional

from fleetshift.domain.exceptions import TopologyError

_PERMISSIONS_RE = re.compile(r"^[0-7]{4}$")


@dataclass(frozen=True)
class CopyItem:
    source: str
    destination: str
    permissions: str = "0644"

    def __post_init__(self) -> None:
        if not self.source:
            raise TopologyError("Copy item source cannot be empty")
        if not self.destination or self.destination.endswith("/"):
            raise TopologyError(
                f"Copy item destination must be a file path, got {self.destination!r}"
            )
        if not _PERMISSIONS_RE.match(self.permissions):
            raise TopologyError(
                f"Copy item permissions must be 4 octal digits, got {self.permissions!r}"
            )

    @property
    def destination_dir(self) -> str:
        return posixpath.dirname(self.destination) or "."


@dataclass(frozen=True)
class NodeUpgradeInfo:
    """Everything needed to operate one software on one node."""
    node: str
    software: str
    ssh_user: str
    ssh_key: str
    stop_cmd: str = ""
    start_cmd: str = ""
    copy: tuple[CopyItem, ...] = ()
    install_cmd: str = ""
    upgrade_cmd: str = ""
    rollback_cmd: str = ""
    delete_rollback_cmd: str = ""


@dataclass(frozen=True)
class SoftwareGroup:
    name: str
    nodes: tuple[str, ...] = ()
    software: tuple[str, ...] = ()


@dataclass(frozen=True)
class CommonSettings:
    ssh_timeout: Optional[float] = None
    group_pause: float = 0.0


@dataclass(frozen=True)
class UpgradeTopology:
    common: CommonSettings = field(default_factory=CommonSettings)
    groups: tuple[SoftwareGroup, ...] = ()
    node_info: dict[tuple[str, str], NodeUpgradeInfo] = field(default_factory=dict)

    def group_names(self) -> list[str]:
        return [g.name for g in self.groups]

    def node_upgrade_info(self, node: str, software: str) -> NodeUpgradeInfo:
        try:
            return self.node_info[(node, software)]
        except KeyError:
            raise TopologyError(
                f"No upgrade information for software {software!r} on node {node!r}"
            ) from None

    def nodes(self) -> list[str]:
        """Distinct node names in first-seen order."""
        seen: dict[str, None] = {}
        for group in self.groups:
            for node in group.nodes:
                seen.setdefault(node, None)
        return list(seen)

    def node_count(self) -> int:
        return len(self.nodes())

    def iter_assignments(self) -> Iterator[tuple[SoftwareGroup, str, str]]:
        """Yield (group, node, software) in execution order."""
        for group in self.groups:
            for node in group.nodes:
                for software in group.software:
                    yield group, node, software

    def source_files(self) -> list[str]:
        seen: dict[str, None] = {}
        for info in self.node_info.values():
            for item in info.copy:
                seen.setdefault(item.source, None)
        return list(seen)

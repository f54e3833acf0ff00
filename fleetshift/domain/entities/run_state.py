"""
Run State Module

Architectural Intent:
- Bookkeeping that survives process restarts so a run can be resumed or
  rolled back
- FailedNodeSoftwareRegistry: (node, software) pairs still pending upgrade
- RollbackSession: pairs successfully upgraded under a given session suffix,
  and therefore eligible for rollback or rollback-artifact deletion

Design Decisions:
- Both registries share NodeSoftwareRegistry (node -> set of software)
- Serialized form lists software sorted so persisted files are stable
- clear() exists so corrupt persisted state can be discarded instead of
  written back
"""

from __future__ import annotations
from typing import Any, Iterator, Mapping

from fleetshift.domain.value_objects.node_software import NodeSoftware


class NodeSoftwareRegistry:
    """A set of (node, software) pairs grouped by node."""

    def __init__(self) -> None:
        self._entries: dict[str, set[str]] = {}

    def add(self, node: str, software: str) -> None:
        self._entries.setdefault(node, set()).add(software)

    def remove(self, node: str, software: str) -> None:
        software_set = self._entries.get(node)
        if software_set is None:
            return
        software_set.discard(software)
        if not software_set:
            del self._entries[node]

    def contains(self, node: str, software: str) -> bool:
        return software in self._entries.get(node, ())

    def is_empty(self) -> bool:
        return not self._entries

    def clear(self) -> None:
        self._entries.clear()

    def __iter__(self) -> Iterator[NodeSoftware]:
        for node, software_set in self._entries.items():
            for software in sorted(software_set):
                yield NodeSoftware(node, software)

    def __len__(self) -> int:
        return sum(len(s) for s in self._entries.values())

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, NodeSoftware):
            return False
        return self.contains(item.node, item.software)

    def to_dict(self) -> dict[str, list[str]]:
        return {node: sorted(sw) for node, sw in self._entries.items()}

    def update_from_dict(self, data: Mapping[str, Any]) -> None:
        """Merge a node -> [software] mapping, validating its shape."""
        if not isinstance(data, Mapping):
            raise ValueError("Expected a mapping of node to software list")
        for node, software_list in data.items():
            if not isinstance(node, str) or not isinstance(software_list, list):
                raise ValueError(f"Invalid entry for node {node!r}")
            for software in software_list:
                if not isinstance(software, str):
                    raise ValueError(f"Invalid software {software!r} for node {node!r}")
                self.add(node, software)


class FailedNodeSoftwareRegistry(NodeSoftwareRegistry):
    """Pairs still pending upgrade. Used by upgrade and resume-upgrade only."""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FailedNodeSoftwareRegistry":
        registry = cls()
        registry.update_from_dict(data)
        return registry


class RollbackSession:
    """Rollback bookkeeping for one upgrade epoch, identified by its suffix."""

    def __init__(self, session_suffix: str, mode: str = "") -> None:
        self.session_suffix = session_suffix
        self.mode = mode
        self.rollback_info = NodeSoftwareRegistry()

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_suffix": self.session_suffix,
            "mode": self.mode,
            "rollback_info": self.rollback_info.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RollbackSession":
        if not isinstance(data, Mapping):
            raise ValueError("Rollback session must be a JSON object")
        suffix = data.get("session_suffix")
        if not isinstance(suffix, str) or not suffix:
            raise ValueError("Rollback session is missing its session_suffix")
        mode = data.get("mode", "")
        if not isinstance(mode, str):
            raise ValueError("Rollback session mode must be a string")
        session = cls(suffix, mode)
        session.rollback_info.update_from_dict(data.get("rollback_info", {}))
        return session

    def __repr__(self) -> str:
        return (
            f"RollbackSession(session_suffix={self.session_suffix!r}, "
            f"mode={self.mode!r}, pairs={len(self.rollback_info)})"
        )

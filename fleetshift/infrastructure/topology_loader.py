"""
Topology Loader

Architectural Intent:
- Parses the JSON topology document into the read-only UpgradeTopology
- Loadable from a byte buffer; any parse or consistency failure raises
  TopologyError and the run does not start

Document layout:
- common: ssh_timeout and group_pause durations
- software: per-software defaults (identity, commands, copy list)
- nodes: optional per-node identity overrides and per-software overrides
- groups: ordered list of {name, nodes, software}

Durations are numbers of seconds or strings such as "500ms", "5s", "1h30m".
"""

from __future__ import annotations
import json
import logging
import re
from pathlib import Path
from typing import Any, Optional, Union

from fleetshift.domain.entities.topology import (
    CommonSettings,
    CopyItem,
    NodeUpgradeInfo,
    SoftwareGroup,
    UpgradeTopology,
)
from fleetshift.domain.exceptions import TopologyError

logger = logging.getLogger(__name__)

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

_COMMAND_FIELDS = (
    "stop_cmd",
    "start_cmd",
    "install_cmd",
    "upgrade_cmd",
    "rollback_cmd",
    "delete_rollback_cmd",
)
_REQUIRED_COMMANDS = ("stop_cmd", "start_cmd")


def parse_duration(value: Union[int, float, str, None]) -> Optional[float]:
    """Parse a duration into seconds. None and "" mean unset."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise TopologyError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise TopologyError(f"Duration cannot be negative: {value!r}")
        return float(value)
    text = str(value).strip().lower()
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise TopologyError(f"Invalid duration: {value!r}")
    return total


def _require_mapping(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise TopologyError(f"{where} must be a JSON object")
    return value


def _require_str_list(value: Any, where: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise TopologyError(f"{where} must be a list of non-empty strings")
    return tuple(value)


def _parse_copy_items(value: Any, where: str) -> tuple[CopyItem, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise TopologyError(f"{where}.copy must be a list")
    items = []
    for i, entry in enumerate(value):
        entry = _require_mapping(entry, f"{where}.copy[{i}]")
        items.append(
            CopyItem(
                source=str(entry.get("src", "")),
                destination=str(entry.get("dest", "")),
                permissions=str(entry.get("permissions", "0644")),
            )
        )
    return tuple(items)


def _build_node_info(node: str, software: str, merged: dict) -> NodeUpgradeInfo:
    where = f"software {software!r} on node {node!r}"
    for name in ("ssh_user", "ssh_key") + _REQUIRED_COMMANDS:
        if not merged.get(name):
            raise TopologyError(f"Missing {name} for {where}")
    commands = {}
    for name in _COMMAND_FIELDS:
        value = merged.get(name, "")
        if not isinstance(value, str):
            raise TopologyError(f"{name} for {where} must be a string")
        commands[name] = value
    return NodeUpgradeInfo(
        node=node,
        software=software,
        ssh_user=str(merged["ssh_user"]),
        ssh_key=str(merged["ssh_key"]),
        copy=_parse_copy_items(merged.get("copy"), where),
        **commands,
    )


def load_topology(data: Union[bytes, str]) -> UpgradeTopology:
    """Build an UpgradeTopology from a JSON document."""
    try:
        document = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TopologyError(f"Unable to parse topology: {e}") from e
    document = _require_mapping(document, "topology")

    common_doc = _require_mapping(document.get("common", {}), "common")
    common = CommonSettings(
        ssh_timeout=parse_duration(common_doc.get("ssh_timeout")),
        group_pause=parse_duration(common_doc.get("group_pause")) or 0.0,
    )

    software_doc = _require_mapping(document.get("software", {}), "software")
    nodes_doc = _require_mapping(document.get("nodes", {}), "nodes")
    groups_doc = document.get("groups", [])
    if not isinstance(groups_doc, list):
        raise TopologyError("groups must be a list")

    groups: list[SoftwareGroup] = []
    node_info: dict[tuple[str, str], NodeUpgradeInfo] = {}
    for i, entry in enumerate(groups_doc):
        entry = _require_mapping(entry, f"groups[{i}]")
        name = entry.get("name")
        if not isinstance(name, str) or not name:
            raise TopologyError(f"groups[{i}] is missing its name")
        if any(g.name == name for g in groups):
            raise TopologyError(f"Duplicate software group: {name!r}")
        group = SoftwareGroup(
            name=name,
            nodes=_require_str_list(entry.get("nodes", []), f"group {name!r} nodes"),
            software=_require_str_list(entry.get("software", []), f"group {name!r} software"),
        )
        for software in group.software:
            if software not in software_doc:
                raise TopologyError(f"Group {name!r} references unknown software {software!r}")
        for node in group.nodes:
            node_doc = _require_mapping(nodes_doc.get(node, {}), f"nodes.{node}")
            overrides = _require_mapping(node_doc.get("software", {}), f"nodes.{node}.software")
            identity = {k: node_doc[k] for k in ("ssh_user", "ssh_key") if k in node_doc}
            for software in group.software:
                base = _require_mapping(software_doc[software], f"software.{software}")
                override = _require_mapping(
                    overrides.get(software, {}), f"nodes.{node}.software.{software}"
                )
                merged = {**base, **identity, **override}
                node_info[(node, software)] = _build_node_info(node, software, merged)
        groups.append(group)

    topology = UpgradeTopology(common=common, groups=tuple(groups), node_info=node_info)
    logger.debug(
        "Loaded topology: %d groups, %d nodes", len(topology.groups), topology.node_count()
    )
    return topology


def load_topology_file(path: Union[str, Path]) -> UpgradeTopology:
    path = Path(path).expanduser()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise TopologyError(f"Error reading topology file {str(path)!r}: {e}") from e
    return load_topology(data)

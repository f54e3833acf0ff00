"""
Pre-flight Verification

Architectural Intent:
- Checks that must pass before any remote mutation: local source files,
  node name resolution, and remote target directories
- Independent failures are collected and raised once as an aggregated,
  deduplicated PreflightError rather than stopping at the first one
- Target directory verification doubles as a connectivity smoke test, and
  in add mode creates missing directories instead of failing
"""

from __future__ import annotations
import logging
import socket
from pathlib import Path
from typing import Callable, Optional

from fleetshift.domain.entities.topology import UpgradeTopology
from fleetshift.domain.exceptions import PreflightError, RemoteError
from fleetshift.domain.value_objects.action import Action
from fleetshift.infrastructure.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def verify_source_files(topology: UpgradeTopology) -> None:
    missing = [
        f"Source file doesn't exist: {source}"
        for source in topology.source_files()
        if not Path(source).expanduser().is_file()
    ]
    if missing:
        raise PreflightError(missing, "Source file verification failed")
    logger.info("All source files verified.")


def verify_nodes_resolvable(
    nodes: list[str],
    resolver: Callable[..., object] = socket.getaddrinfo,
) -> None:
    failures = []
    for node in nodes:
        try:
            resolver(node, None)
        except (OSError, UnicodeError) as e:
            logger.debug("Can't resolve %s: %s", node, e)
            failures.append(f"Can't resolve {node}")
    if failures:
        raise PreflightError(failures, "Node verification failed")
    if nodes:
        logger.info("All nodes verified to be resolvable to IP addresses.")


def verify_target_directories(
    topology: UpgradeTopology,
    sessions,
    action: Action,
    cancellation: Optional[CancellationToken] = None,
) -> None:
    """Verify (and in add mode, create) every copy destination directory.

    Existence is cached per (node, directory) so software sharing a
    destination is only queried once.
    """
    if topology.node_count() == 0:
        return
    logger.info("Verifying target directories, please wait.")

    checked: dict[tuple[str, str], bool] = {}
    errors: list[str] = []

    for group in topology.groups:
        if cancellation is not None and cancellation.cancelled:
            break
        if not group.software:
            continue
        for node in group.nodes:
            if cancellation is not None and cancellation.cancelled:
                break
            for software in group.software:
                info = topology.node_upgrade_info(node, software)
                session = sessions.get_or_create(info.ssh_user, info.ssh_key, node)
                for item in info.copy:
                    remote_dir = item.destination_dir
                    key = (node, remote_dir)
                    if key in checked:
                        continue
                    try:
                        exists = session.directory_exists(remote_dir)
                        if not exists and action == Action.ADD:
                            session.create_directory(remote_dir)
                            logger.info("Created directory %s on node %s", remote_dir, node)
                            exists = True
                    except RemoteError as e:
                        errors.append(f"Node: {node} error: {e}")
                        continue
                    checked[key] = exists
                    if not exists:
                        errors.append(
                            f"Remote directory: {remote_dir} doesn't exist on node: {node}"
                        )

    if errors:
        raise PreflightError(errors, "Error(s) encountered in target directory verification")
    if cancellation is None or not cancellation.cancelled:
        logger.info("All remote directories verified.")

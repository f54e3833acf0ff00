"""
Software Actions Service

Architectural Intent:
- The mode-specific work performed on one (node, software) pair, between the
  stop and start commands: install, upgrade swap, rollback, delete-rollback
- Operates purely through RemoteSessionPort so it is transport-agnostic
- Rollback artifacts are the previous files kept at <destination>.<suffix>,
  or an empty <destination>.<suffix>.absent marker when there was no
  previous file

Command templates are str.format strings; the available placeholders are
{node}, {software} and {suffix}. Literal braces must be doubled.
"""

from __future__ import annotations
import logging
import shlex

from fleetshift.domain.entities.topology import CopyItem, NodeUpgradeInfo
from fleetshift.domain.exceptions import RemoteError, TopologyError
from fleetshift.domain.ports.remote_session_port import RemoteSessionPort

logger = logging.getLogger(__name__)


def rollback_path(destination: str, suffix: str) -> str:
    return f"{destination}.{suffix}"


def absent_marker_path(destination: str, suffix: str) -> str:
    return f"{destination}.{suffix}.absent"


class SoftwareActions:
    """Performs lifecycle actions for one NodeUpgradeInfo over one session."""

    def __init__(self, session: RemoteSessionPort, info: NodeUpgradeInfo) -> None:
        self.session = session
        self.info = info

    def render(self, template: str, suffix: str = "") -> str:
        try:
            return template.format(
                node=self.info.node,
                software=self.info.software,
                suffix=suffix,
            )
        except (KeyError, IndexError, ValueError) as e:
            raise TopologyError(
                f"Invalid command template for {self.info.software}: {template!r} ({e})"
            ) from e

    def _run_template(self, template: str, suffix: str = "") -> None:
        if template:
            self.session.run(self.render(template, suffix))

    def install(self) -> None:
        """Copy every item into place, then run the install command."""
        for item in self.info.copy:
            self.session.copy_local_file(item.source, item.destination, item.permissions)
        self._run_template(self.info.install_cmd)

    def upgrade(self, suffix: str) -> None:
        """Swap in the new version, keeping the old one as a rollback artifact.

        The new files end up in place whether or not the destination existed.
        """
        for item in self.info.copy:
            self._swap(item, suffix)
        self._run_template(self.info.upgrade_cmd, suffix)

    def _swap(self, item: CopyItem, suffix: str) -> None:
        destination = item.destination
        if not self.session.file_exists(destination):
            self._introduce(item, suffix)
            return

        backup = rollback_path(destination, suffix)
        owner = self.session.file_owner(destination)
        self.session.run(f"sudo mv -f {shlex.quote(destination)} {shlex.quote(backup)}")
        try:
            self.session.copy_local_file(item.source, destination, item.permissions)
        except (RemoteError, OSError):
            try:
                self.session.run(f"sudo mv -f {shlex.quote(backup)} {shlex.quote(destination)}")
            except RemoteError as restore_error:
                logger.error(
                    "Unable to restore %s on %s from %s: %s",
                    destination, self.info.node, backup, restore_error,
                )
            raise
        if owner:
            self.session.change_owner(destination, owner)

    def _introduce(self, item: CopyItem, suffix: str) -> None:
        """Copy a file that had no previous version, leaving a marker for rollback."""
        marker = absent_marker_path(item.destination, suffix)
        self.session.run(f"sudo touch {shlex.quote(marker)}")
        try:
            self.session.copy_local_file(item.source, item.destination, item.permissions)
        except (RemoteError, OSError):
            try:
                self.session.run(f"sudo rm -f {shlex.quote(marker)}")
            except RemoteError as cleanup_error:
                logger.error(
                    "Unable to remove %s on %s: %s", marker, self.info.node, cleanup_error,
                )
            raise

    def rollback(self, suffix: str) -> None:
        """Restore the files saved by upgrade under the given suffix.

        Every item must have an artifact on the node: either the previous file
        or the marker left for a file the upgrade introduced. Nothing is
        touched when one is missing.
        """
        plan = []
        for item in self.info.copy:
            backup = rollback_path(item.destination, suffix)
            marker = absent_marker_path(item.destination, suffix)
            if self.session.file_exists(backup):
                plan.append(
                    f"sudo mv -f {shlex.quote(backup)} {shlex.quote(item.destination)}"
                )
            elif self.session.file_exists(marker):
                plan.append(
                    f"sudo rm -f {shlex.quote(item.destination)} {shlex.quote(marker)}"
                )
            else:
                raise RemoteError(
                    f"No rollback artifact {backup} for {self.info.software} on {self.info.node}"
                )
        for command in plan:
            self.session.run(command)
        self._run_template(self.info.rollback_cmd, suffix)

    def delete_rollback(self, suffix: str) -> None:
        """Remove the rollback artifacts for the given suffix."""
        for item in self.info.copy:
            backup = rollback_path(item.destination, suffix)
            marker = absent_marker_path(item.destination, suffix)
            self.session.run(f"sudo rm -f {shlex.quote(backup)} {shlex.quote(marker)}")
        self._run_template(self.info.delete_rollback_cmd, suffix)

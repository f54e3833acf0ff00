"""
Run State Repository

Architectural Intent:
- Persists the FailedNodeSoftwareRegistry and RollbackSession as JSON files
  so an interrupted run can be resumed or rolled back by a later process
- Loading distinguishes "absent" from "unparseable"; both surface as
  StateFileError to the engine
- Saving never raises: a failed write is logged and reported via the return
  value, since the remote work of the run has already happened

Design Decisions:
- Files are written to a temporary sibling and renamed into place so a crash
  mid-write cannot leave a truncated state file behind
- Default file names embed the session suffix, e.g.
  ~/fleetshift-failed-20260101-120000.json
"""

from __future__ import annotations
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from fleetshift.domain.entities.run_state import FailedNodeSoftwareRegistry, RollbackSession
from fleetshift.domain.exceptions import StateFileError

logger = logging.getLogger(__name__)


def generate_session_suffix(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


def default_failed_nodes_file(suffix: str) -> str:
    return f"~/fleetshift-failed-{suffix}.json"


def default_rollback_file(suffix: str) -> str:
    return f"~/fleetshift-rollback-{suffix}.json"


def file_exists(path: str | Path) -> bool:
    return Path(path).expanduser().is_file()


def read_data_from_file(path: str | Path) -> bytes:
    return Path(path).expanduser().read_bytes()


def save_data_to_file(path: str | Path, data: bytes) -> None:
    target = Path(path).expanduser()
    tmp = target.with_name(f".{target.name}.tmp")
    tmp.write_bytes(data)
    os.replace(tmp, target)


class RunStateRepository:
    def __init__(self, failed_nodes_file: str, rollback_file: str) -> None:
        self.failed_nodes_file = failed_nodes_file
        self.rollback_file = rollback_file

    def failed_nodes_exist(self) -> bool:
        return file_exists(self.failed_nodes_file)

    def rollback_session_exists(self) -> bool:
        return file_exists(self.rollback_file)

    def _load_json(self, path: str) -> Any:
        try:
            return json.loads(read_data_from_file(path))
        except FileNotFoundError as e:
            raise StateFileError(f"{path} doesn't exist") from e
        except OSError as e:
            raise StateFileError(f"Unable to read {path}: {e}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StateFileError(f"Unable to parse {path}: {e}") from e

    def load_failed_nodes(self) -> FailedNodeSoftwareRegistry:
        data = self._load_json(self.failed_nodes_file)
        try:
            return FailedNodeSoftwareRegistry.from_dict(data)
        except ValueError as e:
            raise StateFileError(f"Invalid failed nodes file {self.failed_nodes_file}: {e}") from e

    def load_rollback_session(self) -> RollbackSession:
        data = self._load_json(self.rollback_file)
        try:
            return RollbackSession.from_dict(data)
        except ValueError as e:
            raise StateFileError(f"Invalid rollback file {self.rollback_file}: {e}") from e

    def _save(self, path: str, payload: Any, what: str) -> bool:
        try:
            data = json.dumps(payload, indent=2, sort_keys=True).encode()
            save_data_to_file(path, data)
        except (TypeError, ValueError, OSError) as e:
            logger.error("Unable to save the %s to %s: %s", what, path, e)
            return False
        logger.info("Saved the %s to %s", what, path)
        return True

    def save_failed_nodes(self, registry: FailedNodeSoftwareRegistry) -> bool:
        return self._save(self.failed_nodes_file, registry.to_dict(), "failed upgrade information")

    def save_rollback_session(self, session: RollbackSession) -> bool:
        return self._save(self.rollback_file, session.to_dict(), "information for rollback")

"""Tests for the JSON run-state repository."""

import json
import logging
from datetime import datetime

import pytest

from fleetshift.domain.entities.run_state import FailedNodeSoftwareRegistry, RollbackSession
from fleetshift.domain.exceptions import StateFileError
from fleetshift.infrastructure.repositories.run_state_repository import (
    RunStateRepository,
    default_failed_nodes_file,
    default_rollback_file,
    generate_session_suffix,
)


@pytest.fixture
def repository(tmp_path):
    return RunStateRepository(
        failed_nodes_file=str(tmp_path / "failed.json"),
        rollback_file=str(tmp_path / "rollback.json"),
    )


class TestSessionSuffix:
    def test_format(self):
        assert generate_session_suffix(datetime(2026, 1, 2, 3, 4, 5)) == "20260102-030405"

    def test_default_file_names(self):
        assert default_failed_nodes_file("s1") == "~/fleetshift-failed-s1.json"
        assert default_rollback_file("s1") == "~/fleetshift-rollback-s1.json"


class TestFailedNodes:
    def test_round_trip(self, repository):
        registry = FailedNodeSoftwareRegistry()
        registry.add("n1", "appB")
        registry.add("n1", "appA")
        assert repository.save_failed_nodes(registry) is True
        assert repository.failed_nodes_exist()
        loaded = repository.load_failed_nodes()
        assert loaded.to_dict() == {"n1": ["appA", "appB"]}

    def test_missing_file(self, repository):
        assert not repository.failed_nodes_exist()
        with pytest.raises(StateFileError, match="doesn't exist"):
            repository.load_failed_nodes()

    def test_corrupt_file(self, repository, tmp_path):
        (tmp_path / "failed.json").write_text("{not json")
        with pytest.raises(StateFileError, match="Unable to parse"):
            repository.load_failed_nodes()

    def test_wrong_shape(self, repository, tmp_path):
        (tmp_path / "failed.json").write_text(json.dumps({"n1": "appA"}))
        with pytest.raises(StateFileError, match="Invalid failed nodes file"):
            repository.load_failed_nodes()

    def test_save_failure_logged_not_raised(self, tmp_path, caplog):
        repository = RunStateRepository(
            failed_nodes_file=str(tmp_path / "missing-dir" / "failed.json"),
            rollback_file=str(tmp_path / "rollback.json"),
        )
        registry = FailedNodeSoftwareRegistry()
        registry.add("n1", "appA")
        with caplog.at_level(logging.ERROR):
            assert repository.save_failed_nodes(registry) is False
        assert "Unable to save" in caplog.text


class TestRollbackSession:
    def test_round_trip(self, repository, tmp_path):
        session = RollbackSession("s1", "upgrade")
        session.rollback_info.add("n2", "appB")
        assert repository.save_rollback_session(session) is True

        on_disk = json.loads((tmp_path / "rollback.json").read_text())
        assert on_disk == {
            "mode": "upgrade",
            "rollback_info": {"n2": ["appB"]},
            "session_suffix": "s1",
        }
        loaded = repository.load_rollback_session()
        assert loaded.session_suffix == "s1"
        assert loaded.rollback_info.contains("n2", "appB")

    def test_missing_file(self, repository):
        assert not repository.rollback_session_exists()
        with pytest.raises(StateFileError):
            repository.load_rollback_session()

    def test_missing_suffix(self, repository, tmp_path):
        (tmp_path / "rollback.json").write_text(json.dumps({"rollback_info": {}}))
        with pytest.raises(StateFileError, match="Invalid rollback file"):
            repository.load_rollback_session()

    def test_save_replaces_existing(self, repository, tmp_path):
        (tmp_path / "rollback.json").write_text("stale")
        repository.save_rollback_session(RollbackSession("s2", "upgrade"))
        assert repository.load_rollback_session().session_suffix == "s2"
        assert not (tmp_path / ".rollback.json.tmp").exists()

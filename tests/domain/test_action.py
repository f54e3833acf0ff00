"""Tests for the Action value object."""

import pytest
from fleetshift.domain.exceptions import InvalidActionError
from fleetshift.domain.value_objects.action import Action


class TestActionParse:
    @pytest.mark.parametrize("mode,expected", [
        ("upgrade", Action.UPGRADE),
        ("add", Action.ADD),
        ("rollback", Action.ROLLBACK),
        ("delete-rollback", Action.DELETE_ROLLBACK),
        ("delete", Action.DELETE_ROLLBACK),
        ("resume-upgrade", Action.RESUME_UPGRADE),
        ("resume", Action.RESUME_UPGRADE),
        (" Upgrade ", Action.UPGRADE),
    ])
    def test_valid_modes(self, mode, expected):
        assert Action.parse(mode) is expected

    def test_invalid_mode(self):
        with pytest.raises(InvalidActionError, match="Valid modes"):
            Action.parse("downgrade")

    def test_empty_mode(self):
        with pytest.raises(InvalidActionError):
            Action.parse("")


class TestActionProperties:
    def test_stop_start_bracketing(self):
        assert Action.UPGRADE.brackets_with_stop_start
        assert Action.RESUME_UPGRADE.brackets_with_stop_start
        assert Action.ROLLBACK.brackets_with_stop_start
        assert not Action.ADD.brackets_with_stop_start
        assert not Action.DELETE_ROLLBACK.brackets_with_stop_start

    def test_is_upgrade(self):
        assert Action.UPGRADE.is_upgrade
        assert Action.RESUME_UPGRADE.is_upgrade
        assert not Action.ROLLBACK.is_upgrade

    def test_str(self):
        assert str(Action.DELETE_ROLLBACK) == "delete-rollback"

"""Tests for topology entities."""

import pytest
from fleetshift.domain.entities.topology import (
    CopyItem,
    NodeUpgradeInfo,
    SoftwareGroup,
    UpgradeTopology,
)
from fleetshift.domain.exceptions import TopologyError


def _info(node, software, *copy):
    return NodeUpgradeInfo(
        node=node, software=software, ssh_user="deploy", ssh_key="~/.ssh/id",
        stop_cmd="stop", start_cmd="start", copy=tuple(copy),
    )


def _topology():
    groups = (
        SoftwareGroup("g1", nodes=("n1", "n2"), software=("appA",)),
        SoftwareGroup("g2", nodes=("n2", "n3"), software=("appB", "appC")),
    )
    node_info = {}
    for group in groups:
        for node in group.nodes:
            for software in group.software:
                node_info[(node, software)] = _info(
                    node, software, CopyItem(f"build/{software}", f"/opt/{software}/bin")
                )
    return UpgradeTopology(groups=groups, node_info=node_info)


class TestCopyItem:
    def test_defaults(self):
        item = CopyItem("a.tar", "/opt/app/a.tar")
        assert item.permissions == "0644"
        assert item.destination_dir == "/opt/app"

    def test_relative_destination_dir(self):
        assert CopyItem("a", "a").destination_dir == "."

    @pytest.mark.parametrize("permissions", ["644", "06444", "0888", "rwxr"])
    def test_invalid_permissions(self, permissions):
        with pytest.raises(TopologyError, match="permissions"):
            CopyItem("a", "/opt/a", permissions)

    def test_destination_must_be_file(self):
        with pytest.raises(TopologyError):
            CopyItem("a", "/opt/app/")

    def test_empty_source(self):
        with pytest.raises(TopologyError):
            CopyItem("", "/opt/a")


class TestUpgradeTopology:
    def test_group_accessors(self):
        topology = _topology()
        assert topology.group_names() == ["g1", "g2"]
        assert topology.groups[1].nodes == ("n2", "n3")
        assert topology.groups[1].software == ("appB", "appC")

    def test_nodes_distinct_in_order(self):
        topology = _topology()
        assert topology.nodes() == ["n1", "n2", "n3"]
        assert topology.node_count() == 3

    def test_iter_assignments_order(self):
        pairs = [(g.name, n, s) for g, n, s in _topology().iter_assignments()]
        assert pairs == [
            ("g1", "n1", "appA"),
            ("g1", "n2", "appA"),
            ("g2", "n2", "appB"),
            ("g2", "n2", "appC"),
            ("g2", "n3", "appB"),
            ("g2", "n3", "appC"),
        ]

    def test_node_upgrade_info(self):
        info = _topology().node_upgrade_info("n3", "appC")
        assert info.node == "n3"
        assert info.copy[0].destination == "/opt/appC/bin"

    def test_missing_node_upgrade_info(self):
        with pytest.raises(TopologyError):
            _topology().node_upgrade_info("n1", "appB")

    def test_source_files_deduplicated(self):
        assert sorted(_topology().source_files()) == ["build/appA", "build/appB", "build/appC"]

    def test_empty_topology(self):
        topology = UpgradeTopology()
        assert topology.nodes() == []
        assert topology.common.group_pause == 0.0
        assert topology.common.ssh_timeout is None

"""Tests for the topology loader."""

import json

import pytest

from fleetshift.domain.exceptions import TopologyError
from fleetshift.infrastructure.topology_loader import (
    load_topology,
    load_topology_file,
    parse_duration,
)


class TestParseDuration:
    @pytest.mark.parametrize("value,expected", [
        (None, None),
        ("", None),
        (5, 5.0),
        (2.5, 2.5),
        ("10", 10.0),
        ("500ms", 0.5),
        ("5s", 5.0),
        ("2m", 120.0),
        ("1h30m", 5400.0),
        ("1m30s", 90.0),
    ])
    def test_valid(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["soon", "5x", "s5", "5s garbage", -1, True])
    def test_invalid(self, value):
        with pytest.raises(TopologyError):
            parse_duration(value)


class TestLoadTopology:
    def test_groups_in_order(self, topology_document):
        topology = load_topology(json.dumps(topology_document()))
        assert topology.group_names() == ["g1", "g2"]
        assert topology.groups[0].nodes == ("n1",)
        assert topology.nodes() == ["n1", "n2"]

    def test_node_info_from_software_defaults(self, topology_document):
        topology = load_topology(json.dumps(topology_document()).encode())
        info = topology.node_upgrade_info("n1", "appA")
        assert info.ssh_user == "deploy"
        assert info.stop_cmd == "systemctl stop appA"
        assert info.copy[0].destination == "/opt/appA/appA"
        assert info.copy[0].permissions == "0755"
        assert info.rollback_cmd == ""

    def test_common_settings(self, topology_document):
        document = topology_document(ssh_timeout="10s", group_pause="1m")
        topology = load_topology(json.dumps(document))
        assert topology.common.ssh_timeout == 10.0
        assert topology.common.group_pause == 60.0

    def test_node_overrides(self, topology_document):
        document = topology_document()
        document["nodes"] = {
            "n1": {
                "ssh_user": "admin",
                "software": {"appA": {"start_cmd": "service appA start"}},
            }
        }
        topology = load_topology(json.dumps(document))
        info = topology.node_upgrade_info("n1", "appA")
        assert info.ssh_user == "admin"
        assert info.start_cmd == "service appA start"
        assert info.stop_cmd == "systemctl stop appA"
        assert topology.node_upgrade_info("n2", "appB").ssh_user == "deploy"

    def test_invalid_json(self):
        with pytest.raises(TopologyError, match="Unable to parse"):
            load_topology("{")

    def test_unknown_software(self, topology_document):
        document = topology_document()
        document["groups"][0]["software"] = ["appZ"]
        with pytest.raises(TopologyError, match="unknown software"):
            load_topology(json.dumps(document))

    def test_duplicate_group(self, topology_document):
        document = topology_document()
        document["groups"][1]["name"] = "g1"
        with pytest.raises(TopologyError, match="Duplicate"):
            load_topology(json.dumps(document))

    def test_missing_stop_cmd(self, topology_document):
        document = topology_document()
        del document["software"]["appB"]["stop_cmd"]
        with pytest.raises(TopologyError, match="stop_cmd"):
            load_topology(json.dumps(document))

    def test_bad_permissions(self, topology_document):
        document = topology_document()
        document["software"]["appA"]["copy"][0]["permissions"] = "755"
        with pytest.raises(TopologyError, match="permissions"):
            load_topology(json.dumps(document))

    def test_group_without_nodes(self, topology_document):
        document = topology_document()
        document["groups"].append({"name": "g3", "software": ["appA"]})
        topology = load_topology(json.dumps(document))
        assert topology.groups[2].nodes == ()


class TestLoadTopologyFile:
    def test_reads_file(self, topology_document, tmp_path):
        path = tmp_path / "topology.json"
        path.write_text(json.dumps(topology_document()))
        assert load_topology_file(path).group_names() == ["g1", "g2"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(TopologyError, match="Error reading topology file"):
            load_topology_file(tmp_path / "absent.json")

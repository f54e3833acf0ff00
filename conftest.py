"""Global test configuration.

Shared fakes for the remote session port and the identity cache, plus a
two-group topology used across the engine tests.
"""

import json

import pytest

from fleetshift.domain.exceptions import RemoteCommandError, RemoteConnectionError
from fleetshift.domain.ports.remote_session_port import ProcessStatus, RemoteSessionPort
from fleetshift.infrastructure.topology_loader import load_topology


class FakeSession(RemoteSessionPort):
    """In-memory RemoteSessionPort recording every remote interaction."""

    def __init__(self, host, fail_on=(), existing=(), fail_copy=False, on_run=None):
        self.host = host
        self.fail_on = set(fail_on)
        self.existing = set(existing)
        self.fail_copy = fail_copy
        self.on_run = on_run
        self.commands = []
        self.copies = []
        self.created = []

    def run(self, command):
        self.commands.append(command)
        if self.on_run is not None:
            self.on_run(self, command)
        for needle in self.fail_on:
            if needle in command:
                raise RemoteCommandError(command, 1, "", "boom")
        return "ok\n"

    def copy(self, source, remote_path, permissions, size):
        self.copy_file_by_content(source.read(), remote_path, permissions)

    def copy_file_by_content(self, content, remote_path, permissions):
        self.copy_local_file("<memory>", remote_path, permissions)

    def copy_local_file(self, local_path, remote_path, permissions):
        if self.fail_copy:
            raise RemoteConnectionError(f"copy to {self.host} failed")
        self.copies.append((local_path, remote_path, permissions))
        self.existing.add(remote_path)

    def directory_exists(self, path):
        return path in self.existing

    def file_exists(self, path):
        return path in self.existing

    def create_directory(self, path):
        self.created.append(path)
        self.existing.add(path)

    def process_status(self, name):
        return ProcessStatus(exists=False)

    def signal(self, name, signal_id):
        return self.run(f"pkill -{signal_id} {name}")

    def interrupt(self, name):
        return self.signal(name, "INT")

    def checksum(self, path, algorithm="sha256sum"):
        return "0" * 64

    def get_os(self):
        return "linux"

    def file_owner(self, path):
        return "app:app"

    def file_permissions(self, path):
        return "0644"

    def change_owner(self, path, owner):
        self.commands.append(f"chown {owner} {path}")


class FakeSessions:
    """Stands in for IdentityCache, handing out one FakeSession per host."""

    def __init__(self, **per_host):
        self.per_host = per_host
        self.sessions = {}
        self.timeout = None
        self.cleared = False

    def get_or_create(self, user, key_path, host):
        if host not in self.sessions:
            self.sessions[host] = FakeSession(host, **self.per_host.get(host, {}))
        return self.sessions[host]

    def set_connect_timeout(self, timeout):
        self.timeout = timeout

    def clear_all(self):
        self.cleared = True

    def commands(self, host):
        session = self.sessions.get(host)
        return session.commands if session else []


def two_group_document(**common):
    return {
        "common": {"group_pause": 0, **common},
        "software": {
            "appA": {
                "ssh_user": "deploy",
                "ssh_key": "~/.ssh/id_test",
                "stop_cmd": "systemctl stop appA",
                "start_cmd": "systemctl start appA",
                "copy": [
                    {"src": "build/appA", "dest": "/opt/appA/appA", "permissions": "0755"}
                ],
                "install_cmd": "install {software} on {node}",
                "upgrade_cmd": "upgraded {software} {suffix}",
            },
            "appB": {
                "ssh_user": "deploy",
                "ssh_key": "~/.ssh/id_test",
                "stop_cmd": "systemctl stop appB",
                "start_cmd": "systemctl start appB",
                "copy": [
                    {"src": "build/appB", "dest": "/opt/appB/appB", "permissions": "0755"}
                ],
            },
        },
        "groups": [
            {"name": "g1", "nodes": ["n1"], "software": ["appA"]},
            {"name": "g2", "nodes": ["n2"], "software": ["appB"]},
        ],
    }


@pytest.fixture
def two_group_topology():
    return load_topology(json.dumps(two_group_document()))


@pytest.fixture
def topology_document():
    """Factory for the two-group topology document; kwargs go to common."""
    return two_group_document


@pytest.fixture
def make_sessions():
    """Factory for FakeSessions; kwargs map host to FakeSession options."""
    return FakeSessions

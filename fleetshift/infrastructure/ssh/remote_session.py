"""
Remote Session Adapter

Architectural Intent:
- Infrastructure adapter implementing RemoteSessionPort via Fabric/SSH
- Owns one Fabric Connection per identity, dialed lazily and reused for
  every command and copy against that host
- Every run() and copy() uses a fresh single-use channel that is closed
  before the call returns

Connection lifecycle:
- Closed -> Connecting -> Open on connect(); close() returns to Closed,
  destroy() additionally scrubs the identity's credentials
- While open, a KeepAlive thread sends keepalive@openssh.com requests and
  exits silently on the first failure, marking the connection stale. The next
  operation on a stale connection closes it and raises RemoteConnectionError;
  the operation after that redials

Copy handshake (scp sink protocol):
- The channel runs "sudo scp -t <directory>"
- A _CopyStreamer thread writes "C<perm> <size> <name>\\n", exactly size bytes
  and a NUL byte, then shuts down the write side
- The foreground drains the channel, collects the exit status and joins the
  streamer before returning

Security:
- Host keys are accepted without verification (AutoAddPolicy). FleetShift
  targets known internal fleets; this is a deliberate trust decision
- Only the identity's own key is offered (no agent, no key discovery)
"""

from __future__ import annotations
import io
import logging
import os
import posixpath
import shlex
import threading
from typing import BinaryIO, Optional, Union

import paramiko
from fabric import Connection

from fleetshift.domain.exceptions import (
    CopySizeMismatchError,
    InvalidPermissionsError,
    NoSessionError,
    RemoteAuthenticationError,
    RemoteCommandError,
    RemoteConnectionError,
    RemoteError,
)
from fleetshift.domain.ports.remote_session_port import ProcessStatus, RemoteSessionPort
from fleetshift.infrastructure.ssh.identity import RemoteIdentity, expand_path

logger = logging.getLogger(__name__)

SSH_PORT = 22
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_KEEPALIVE_INTERVAL = 5.0
KEEPALIVE_REQUEST = "keepalive@openssh.com"

# stat prints this when the path is missing. DO NOT LOCALIZE
ABSENT_MESSAGE = "No such file or directory"

_COPY_CHUNK_SIZE = 32 * 1024
_CHECKSUM_TOOLS = {
    "md5": "md5sum",
    "md5sum": "md5sum",
    "sha256": "sha256sum",
    "sha256sum": "sha256sum",
    "sum": "sum",
}
_TRANSPORT_ERRORS = (paramiko.SSHException, EOFError, OSError)


class KeepAlive(threading.Thread):
    """Periodic no-op request on an open transport.

    Stops silently the first time the request cannot be sent.
    """

    def __init__(self, transport: paramiko.Transport, interval: float, name: str = "keepalive") -> None:
        super().__init__(name=name, daemon=True)
        self._transport = transport
        self._interval = interval
        self._stopped = threading.Event()
        self.failed = False

    def run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                if not self._transport.is_active():
                    raise EOFError("transport is no longer active")
                self._transport.global_request(KEEPALIVE_REQUEST, wait=True)
            except _TRANSPORT_ERRORS:
                self.failed = True
                return

    def stop(self) -> None:
        self._stopped.set()


class _CopyStreamer(threading.Thread):
    """Writes the scp control line, payload and terminator to a channel."""

    def __init__(
        self,
        channel: paramiko.Channel,
        source: BinaryIO,
        permissions: str,
        size: int,
        filename: str,
    ) -> None:
        super().__init__(name=f"copy-{filename}", daemon=True)
        self._channel = channel
        self._source = source
        self._permissions = permissions
        self._size = size
        self._filename = filename
        self.written = 0
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            header = f"C{self._permissions} {self._size} {self._filename}\n"
            self._channel.sendall(header.encode())
            remaining = self._size
            while remaining > 0:
                chunk = self._source.read(min(_COPY_CHUNK_SIZE, remaining))
                if not chunk:
                    break
                self._channel.sendall(chunk)
                self.written += len(chunk)
                remaining -= len(chunk)
            self._channel.sendall(b"\x00")
        except _TRANSPORT_ERRORS as e:
            self.error = e
        finally:
            try:
                self._channel.shutdown_write()
            except _TRANSPORT_ERRORS as e:
                logger.debug("shutdown_write failed for %s: %s", self._filename, e)


class RemoteSession(RemoteSessionPort):
    """Adapter implementing RemoteSessionPort over a cached Fabric Connection."""

    def __init__(
        self,
        identity: RemoteIdentity,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        auto_open: bool = True,
    ) -> None:
        self.identity = identity
        self.connect_timeout = connect_timeout
        self.keepalive_interval = keepalive_interval
        self.auto_open = auto_open
        self._connection: Optional[Connection] = None
        self._keepalive: Optional[KeepAlive] = None
        self._channel: Optional[paramiko.Channel] = None
        self._remote_os = ""

    @property
    def host(self) -> str:
        return self.identity.host

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    @property
    def stale(self) -> bool:
        if self._connection is None:
            return False
        if self._keepalive is not None and self._keepalive.failed:
            return True
        return not self._connection.is_connected

    def enable_auto_open(self) -> None:
        self.auto_open = True

    def disable_auto_open(self) -> None:
        self.auto_open = False

    def set_keepalive(self, interval: float) -> None:
        """Takes effect on the next dial."""
        self.keepalive_interval = interval

    # -- connection lifecycle ------------------------------------------------

    def _get_connection(self) -> Connection:
        return Connection(
            host=self.identity.host,
            user=self.identity.user,
            port=SSH_PORT,
            connect_timeout=self.connect_timeout,
            connect_kwargs={
                "pkey": self.identity.private_key(),
                "allow_agent": False,
                "look_for_keys": False,
            },
        )

    def connect(self) -> Connection:
        if self._connection is not None:
            if self.stale:
                host = self.host
                self.close()
                raise RemoteConnectionError(f"Connection to {host} presumed stale")
            return self._connection

        connection = self._get_connection()
        connection.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            connection.open()
        except paramiko.AuthenticationException as e:
            raise RemoteAuthenticationError(
                f"Authentication failed for {self.identity.user}@{self.host}: {e}"
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise RemoteConnectionError(f"Unable to connect to {self.host}: {e}") from e

        self._connection = connection
        self._keepalive = KeepAlive(
            connection.transport,
            self.keepalive_interval,
            name=f"keepalive-{self.host}",
        )
        self._keepalive.start()
        logger.debug("Connected to %s@%s", self.identity.user, self.host)
        return connection

    def _ensure_connection(self) -> Connection:
        if self._connection is None and not self.auto_open:
            raise NoSessionError(f"No SSH session opened to {self.host}")
        return self.connect()

    def _open_session(self, connection: Connection) -> paramiko.Channel:
        if self._channel is not None:
            self._close_session()
        try:
            self._channel = connection.transport.open_session(timeout=self.connect_timeout)
        except _TRANSPORT_ERRORS as e:
            raise RemoteConnectionError(f"Unable to open a session on {self.host}: {e}") from e
        return self._channel

    def _close_session(self) -> None:
        if self._channel is not None:
            channel, self._channel = self._channel, None
            channel.close()

    def close(self) -> None:
        self._close_session()
        if self._keepalive is not None:
            self._keepalive.stop()
            self._keepalive = None
        if self._connection is not None:
            connection, self._connection = self._connection, None
            connection.close()

    def destroy(self) -> None:
        self.close()
        self.identity.scrub()

    # -- commands --------------------------------------------------------------

    def _execute(self, command: str):
        connection = self._ensure_connection()
        try:
            return connection.run(command, hide=True, warn=True, in_stream=False)
        except _TRANSPORT_ERRORS as e:
            raise RemoteConnectionError(f"{self.host}: {e}") from e

    def run(self, command: str) -> str:
        result = self._execute(command)
        if result.failed:
            raise RemoteCommandError(command, result.exited, result.stdout, result.stderr)
        return result.stdout

    # -- file transfer ---------------------------------------------------------

    def copy(self, source: BinaryIO, remote_path: str, permissions: str, size: int) -> None:
        if len(permissions) != 4:
            raise InvalidPermissionsError(
                f"permissions need to be 4 characters, got {permissions!r}"
            )
        filename = posixpath.basename(remote_path)
        if not filename:
            raise RemoteError(f"Remote filename is empty in {remote_path!r}")
        directory = posixpath.dirname(remote_path) or "."
        command = f"sudo scp -t {shlex.quote(directory)}"

        connection = self._ensure_connection()
        channel = self._open_session(connection)
        try:
            # one stream, so a chatty stderr cannot stall the stdout read
            channel.set_combine_stderr(True)
            try:
                channel.exec_command(command)
            except _TRANSPORT_ERRORS as e:
                raise RemoteConnectionError(f"{self.host}: {e}") from e
            streamer = _CopyStreamer(channel, source, permissions, size, filename)
            streamer.start()
            try:
                output = channel.makefile("rb").read()
                exit_status = channel.recv_exit_status()
            finally:
                streamer.join()
        finally:
            self._close_session()

        if streamer.written != size:
            raise CopySizeMismatchError(streamer.written, size)
        if streamer.error is not None:
            raise RemoteError(
                f"Copy to {self.host}:{remote_path} failed: {streamer.error}"
            ) from streamer.error
        if exit_status != 0:
            raise RemoteCommandError(command, exit_status, output.decode(errors="replace"))
        logger.debug("Copied %d bytes to %s:%s", size, self.host, remote_path)

    def copy_file_by_content(
        self, content: Union[bytes, str], remote_path: str, permissions: str
    ) -> None:
        if isinstance(content, str):
            content = content.encode()
        self.copy(io.BytesIO(content), remote_path, permissions, len(content))

    def copy_local_file(self, local_path: str, remote_path: str, permissions: str) -> None:
        with open(expand_path(local_path), "rb") as f:
            size = os.fstat(f.fileno()).st_size
            self.copy(f, remote_path, permissions, size)

    # -- remote queries --------------------------------------------------------

    def directory_exists(self, path: str) -> bool:
        # Might not be able to deal with a symlink as a directory.
        result = self._execute(f"stat {shlex.quote(path)}")
        if ABSENT_MESSAGE in result.stdout or ABSENT_MESSAGE in result.stderr:
            return False
        if result.failed:
            raise RemoteCommandError(
                f"stat {path}", result.exited, result.stdout, result.stderr
            )
        return True

    def file_exists(self, path: str) -> bool:
        return self.directory_exists(path)

    def create_directory(self, path: str) -> None:
        self.run(f"sudo mkdir -p {shlex.quote(path)}")

    def process_status(self, name: str) -> ProcessStatus:
        command = f"pgrep -l {shlex.quote(name)}"
        try:
            result = self._execute(command)
        except RemoteError as e:
            return ProcessStatus(error=e)
        # pgrep exits 1 when nothing matched
        if result.exited == 1 and not result.stdout.strip():
            return ProcessStatus(exists=False)
        if result.failed:
            return ProcessStatus(
                error=RemoteCommandError(command, result.exited, result.stdout, result.stderr)
            )
        return ProcessStatus(exists=bool(result.stdout.strip()))

    def signal(self, name: str, signal_id: str) -> str:
        return self.run(f"pkill -{shlex.quote(signal_id)} {shlex.quote(name)}")

    def interrupt(self, name: str) -> str:
        return self.signal(name, "INT")

    def checksum(self, path: str, algorithm: str = "sha256sum") -> str:
        tool = _CHECKSUM_TOOLS.get(algorithm.lower())
        if tool is None:
            raise ValueError(
                f"Unsupported checksum algorithm {algorithm!r}. "
                f"Supported: {', '.join(sorted(set(_CHECKSUM_TOOLS.values())))}"
            )
        fields = self.run(f"{tool} {shlex.quote(path)}").split()
        if not fields:
            raise RemoteError(f"{tool} returned no output for {path} on {self.host}")
        return fields[0]

    def get_os(self) -> str:
        if not self._remote_os:
            try:
                output = self.run("uname")
            except RemoteError as e:
                logger.debug("Unable to determine OS of %s: %s", self.host, e)
                return ""
            self._remote_os = output.replace("\n", "").strip().lower()
        return self._remote_os

    def file_owner(self, path: str) -> str:
        return self.run(f"stat --printf=%U:%G {shlex.quote(path)}").strip()

    def file_permissions(self, path: str) -> str:
        return self.run(f"stat -c %a {shlex.quote(path)}").strip().zfill(4)

    def change_owner(self, path: str, owner: str) -> None:
        self.run(f"sudo chown {shlex.quote(owner)} {shlex.quote(path)}")

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"RemoteSession({self.identity.user}@{self.host}, {state})"

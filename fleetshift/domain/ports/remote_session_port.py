"""
Remote Session Port

Architectural Intent:
- Port interface for executing commands and transferring files on one host
- Domain services and the orchestration engine depend on this contract only
- Implemented by the SSH RemoteSession adapter

Errors are reported by raising RemoteError subclasses, except for
process_status which returns its error alongside the result.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Optional


@dataclass(frozen=True)
class ProcessStatus:
    """Result of a remote process lookup.

    error is set when the lookup itself failed, in which case exists carries
    no information.
    """
    exists: bool = False
    error: Optional[Exception] = None

    @property
    def determined(self) -> bool:
        return self.error is None


class RemoteSessionPort(ABC):
    """
    Port interface for a single remote host reached with a single identity.
    """

    @abstractmethod
    def run(self, command: str) -> str:
        """
        Runs a command in a fresh one-shot session and returns its stdout.
        """
        pass

    @abstractmethod
    def copy(self, source: BinaryIO, remote_path: str, permissions: str, size: int) -> None:
        """
        Streams exactly size bytes from source to remote_path.
        """
        pass

    @abstractmethod
    def copy_file_by_content(self, content: bytes, remote_path: str, permissions: str) -> None:
        pass

    @abstractmethod
    def copy_local_file(self, local_path: str, remote_path: str, permissions: str) -> None:
        pass

    @abstractmethod
    def directory_exists(self, path: str) -> bool:
        """
        Returns True if path exists. Does not distinguish files from directories.
        """
        pass

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def create_directory(self, path: str) -> None:
        """
        Creates path and its parents. Succeeds if it already exists.
        """
        pass

    @abstractmethod
    def process_status(self, name: str) -> ProcessStatus:
        pass

    @abstractmethod
    def signal(self, name: str, signal_id: str) -> str:
        pass

    @abstractmethod
    def interrupt(self, name: str) -> str:
        pass

    @abstractmethod
    def checksum(self, path: str, algorithm: str = "sha256sum") -> str:
        pass

    @abstractmethod
    def get_os(self) -> str:
        pass

    @abstractmethod
    def file_owner(self, path: str) -> str:
        """
        Returns the owner of path as user:group.
        """
        pass

    @abstractmethod
    def file_permissions(self, path: str) -> str:
        pass

    @abstractmethod
    def change_owner(self, path: str, owner: str) -> None:
        pass

"""
Remote Identity

Architectural Intent:
- The (user, private key, host) triple used to authenticate to one host
- Key material is read once at creation and parsed lazily on first connect
- A key file that cannot be read is not an error until a connection is
  attempted, which then fails with RemoteAuthenticationError
"""

from __future__ import annotations
import io
import logging
import os
from typing import Optional

import paramiko

from fleetshift.domain.exceptions import RemoteAuthenticationError

logger = logging.getLogger(__name__)

_KEY_CLASSES = (paramiko.RSAKey, paramiko.Ed25519Key, paramiko.ECDSAKey)


def expand_path(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))


def read_key_file(path: str) -> str:
    with open(path, "r") as f:
        return f.read()


class RemoteIdentity:
    def __init__(
        self,
        user: str,
        host: str,
        key_path: str,
        key_material: Optional[str] = None,
    ) -> None:
        self.user = user
        self.host = host
        self.key_path = key_path
        self._key_material = key_material
        self._parsed_key: Optional[paramiko.PKey] = None

    @classmethod
    def from_key_file(cls, user: str, key_path: str, host: str) -> "RemoteIdentity":
        key_path = expand_path(key_path)
        key_material: Optional[str] = None
        try:
            key_material = read_key_file(key_path)
        except OSError as e:
            logger.warning("Unable to read private key %s: %s", key_path, e)
        return cls(user=user, host=host, key_path=key_path, key_material=key_material)

    @property
    def scrubbed(self) -> bool:
        return not self.user and not self.host and self._key_material is None

    def private_key(self) -> paramiko.PKey:
        """Parse the key material on first use and cache the result."""
        if self._parsed_key is not None:
            return self._parsed_key
        if not self._key_material:
            raise RemoteAuthenticationError(
                f"No private key material available from {self.key_path!r}"
            )
        for key_cls in _KEY_CLASSES:
            try:
                self._parsed_key = key_cls.from_private_key(io.StringIO(self._key_material))
                return self._parsed_key
            except paramiko.SSHException:
                continue
        raise RemoteAuthenticationError(
            f"Unable to parse private key {self.key_path!r}"
        )

    def scrub(self) -> None:
        """Drop credentials and addressing. Irreversible."""
        self._key_material = None
        self._parsed_key = None
        self.user = ""
        self.host = ""

    def __repr__(self) -> str:
        return f"RemoteIdentity(user={self.user!r}, host={self.host!r}, key_path={self.key_path!r})"

"""
SSH Infrastructure

Architectural Intent:
- Remote identities, the identity cache and the Fabric-backed RemoteSession
"""

from fleetshift.infrastructure.ssh.identity import RemoteIdentity
from fleetshift.infrastructure.ssh.identity_cache import IdentityCache
from fleetshift.infrastructure.ssh.remote_session import KeepAlive, RemoteSession

__all__ = [
    "IdentityCache",
    "KeepAlive",
    "RemoteIdentity",
    "RemoteSession",
]

"""
Domain Ports Package

Architectural Intent:
- Contains port interfaces (abstract contracts) for external dependencies
- Ports define what the domain needs, adapters implement how
"""

from fleetshift.domain.ports.remote_session_port import ProcessStatus, RemoteSessionPort

__all__ = [
    "ProcessStatus",
    "RemoteSessionPort",
]

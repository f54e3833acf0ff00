"""
Domain Services Package

Architectural Intent:
- Contains domain services implementing the per-pair lifecycle actions
"""

from fleetshift.domain.services.software_actions import SoftwareActions, rollback_path

__all__ = [
    "SoftwareActions",
    "rollback_path",
]

"""
Composition Root

Architectural Intent:
- Dependency injection composition root for the FleetShift application
- Single place where the identity cache, run-state repository, cancellation
  token and the lifecycle use case are wired together
- The cache and token are explicit objects owned by the container, never
  module-level globals

Design Decisions:
- Uses a simple dataclass container instead of a DI framework
- State file names default to names derived from the session suffix
"""

from dataclasses import dataclass
from typing import Optional

from fleetshift.application.dtos.run_dtos import RunRequest
from fleetshift.application.use_cases.run_lifecycle import RunSoftwareLifecycle
from fleetshift.infrastructure.cancellation import CancellationToken
from fleetshift.infrastructure.config import FleetShiftConfig
from fleetshift.infrastructure.repositories.run_state_repository import (
    RunStateRepository,
    default_failed_nodes_file,
    default_rollback_file,
    generate_session_suffix,
)
from fleetshift.infrastructure.ssh.identity_cache import IdentityCache


@dataclass
class FleetShiftContainer:
    """DI container holding all wired dependencies."""

    config: FleetShiftConfig
    session_suffix: str
    identity_cache: IdentityCache
    repository: RunStateRepository
    cancellation: CancellationToken
    run_lifecycle: RunSoftwareLifecycle

    def build_request(self) -> RunRequest:
        config = self.config
        return RunRequest(
            action=config.run.action,
            dry_run=config.run.dry_run,
            verify_files=config.verification.files,
            verify_nodes=config.verification.nodes,
            verify_target_dirs=config.verification.target_dirs,
            rollback_suffix=self.session_suffix,
            ssh_timeout=config.ssh.timeout or None,
        )


def create_container(
    config: FleetShiftConfig,
    cancellation: Optional[CancellationToken] = None,
) -> FleetShiftContainer:
    """Create and wire all dependencies."""
    suffix = config.state.rollback_suffix or generate_session_suffix()
    repository = RunStateRepository(
        failed_nodes_file=config.state.failed_nodes_file or default_failed_nodes_file(suffix),
        rollback_file=config.state.rollback_file or default_rollback_file(suffix),
    )
    identity_cache = IdentityCache(keepalive_interval=config.ssh.keepalive_interval)
    cancellation = cancellation or CancellationToken()
    run_lifecycle = RunSoftwareLifecycle(identity_cache, repository, cancellation)

    return FleetShiftContainer(
        config=config,
        session_suffix=suffix,
        identity_cache=identity_cache,
        repository=repository,
        cancellation=cancellation,
        run_lifecycle=run_lifecycle,
    )

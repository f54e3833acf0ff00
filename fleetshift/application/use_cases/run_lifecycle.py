"""
Run Lifecycle Use Case

Architectural Intent:
- The orchestration engine: validates preconditions, builds or loads run
  state, then walks groups -> nodes -> software strictly in declaration order
- Each (node, software) pair is bracketed by its stop and start commands
  (except for add and delete-rollback); a failing pair is logged and
  isolated, never aborting the run
- Run state is persisted and every cached connection closed on every exit
  path, including cancellation

State transitions per pair:
- upgrade / resume-upgrade success: removed from the failed registry, added
  to the rollback session
- rollback success: removed from the rollback session
- any failure: bookkeeping unchanged, so the pair stays pending

Cancellation is polled at group, node and software boundaries. An in-flight
remote command is always allowed to finish.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Optional

from fleetshift.application.dtos.run_dtos import (
    PairFailure,
    RunRequest,
    RunResult,
    RunStatus,
)
from fleetshift.application.preflight import (
    verify_nodes_resolvable,
    verify_source_files,
    verify_target_directories,
)
from fleetshift.domain.entities.run_state import FailedNodeSoftwareRegistry, RollbackSession
from fleetshift.domain.entities.topology import NodeUpgradeInfo, UpgradeTopology
from fleetshift.domain.exceptions import FleetShiftError, StateFileError
from fleetshift.domain.ports.remote_session_port import RemoteSessionPort
from fleetshift.domain.services.software_actions import SoftwareActions
from fleetshift.domain.value_objects.action import Action
from fleetshift.infrastructure.cancellation import CancellationToken
from fleetshift.infrastructure.repositories.run_state_repository import RunStateRepository
from fleetshift.infrastructure.ssh.remote_session import DEFAULT_CONNECT_TIMEOUT

logger = logging.getLogger(__name__)

_STOP = "stop"
_START = "start"


def _action_message(action: Action, node: str, software: str) -> str:
    if action == Action.ADD:
        return f"Adding software: {software} to node: {node}"
    if action == Action.DELETE_ROLLBACK:
        return f"Deleting rollback for software: {software} from node: {node}"
    if action == Action.RESUME_UPGRADE:
        return f"Resuming upgrade for node: {node} with software: {software}"
    if action == Action.ROLLBACK:
        return f"Rolling back software: {software} for node: {node}"
    return f"Upgrading node: {node} with software: {software}"


class _Run:
    """Mutable state of a single execution."""

    def __init__(self, request: RunRequest) -> None:
        self.action: Action = request.action
        self.dry_run = request.dry_run
        self.failed = FailedNodeSoftwareRegistry()
        self.rollback = RollbackSession(request.rollback_suffix)
        self.resume = False
        self.processed = 0
        self.failures: list[PairFailure] = []

    @property
    def suffix(self) -> str:
        return self.rollback.session_suffix

    def record_failure(self, node: str, software: str, stage: str, error: Exception) -> None:
        failure = PairFailure(node, software, stage, str(error))
        logger.error("%s", failure)
        self.failures.append(failure)


class RunSoftwareLifecycle:
    def __init__(
        self,
        sessions,
        repository: RunStateRepository,
        cancellation: Optional[CancellationToken] = None,
        resolver=None,
    ) -> None:
        self.sessions = sessions
        self.repository = repository
        self.cancellation = cancellation or CancellationToken()
        self.resolver = resolver

    @property
    def cancelled(self) -> bool:
        return self.cancellation.cancelled

    async def execute(self, topology: UpgradeTopology, request: RunRequest) -> RunResult:
        self.sessions.set_connect_timeout(
            request.ssh_timeout or topology.common.ssh_timeout or DEFAULT_CONNECT_TIMEOUT
        )
        logger.info(
            "%d groups defined: %s", len(topology.groups), topology.group_names()
        )
        try:
            self._preflight(topology, request)
            return await self._execute_run(topology, request)
        finally:
            self.sessions.clear_all()

    # -- pre-flight ------------------------------------------------------------

    def _preflight(self, topology: UpgradeTopology, request: RunRequest) -> None:
        if request.verify_files:
            verify_source_files(topology)
        nodes = topology.nodes()
        logger.info("%d nodes found: %s", len(nodes), nodes)
        if request.verify_nodes:
            if self.resolver is not None:
                verify_nodes_resolvable(nodes, self.resolver)
            else:
                verify_nodes_resolvable(nodes)
        # add always walks the target directories so missing ones get created
        if request.verify_target_dirs or request.action == Action.ADD:
            verify_target_directories(topology, self.sessions, request.action, self.cancellation)

    # -- run state -------------------------------------------------------------

    def _initialize_state(self, topology: UpgradeTopology, run: _Run) -> None:
        action = run.action
        if action == Action.ADD:
            run.rollback.mode = action.value
        elif action in (Action.ROLLBACK, Action.DELETE_ROLLBACK):
            if not self.repository.rollback_session_exists():
                raise StateFileError(
                    f"Can't {action.value} as {self.repository.rollback_file} doesn't exist."
                )
            try:
                loaded = self.repository.load_rollback_session()
            except StateFileError:
                # never persist corrupt state back
                run.rollback.rollback_info.clear()
                run.failed.clear()
                raise
            run.rollback = loaded
        elif action == Action.RESUME_UPGRADE:
            if not self.repository.failed_nodes_exist():
                raise StateFileError(
                    f"Can't resume upgrade as {self.repository.failed_nodes_file} doesn't exist."
                )
            try:
                run.failed = self.repository.load_failed_nodes()
            except StateFileError:
                run.rollback.rollback_info.clear()
                run.failed.clear()
                raise
            run.rollback.mode = action.value
            run.resume = True
        else:
            run.rollback.mode = action.value
            if self._load_previous_failures(run):
                run.resume = True
                logger.info(
                    "Resuming from %s with %d pending upgrades",
                    self.repository.failed_nodes_file, len(run.failed),
                )
            else:
                logger.info("Building node software list...")
                for _, node, software in topology.iter_assignments():
                    run.failed.add(node, software)
                logger.info("Node software list built.")

    def _load_previous_failures(self, run: _Run) -> bool:
        if not self.repository.failed_nodes_exist():
            return False
        try:
            previous = self.repository.load_failed_nodes()
        except StateFileError as e:
            logger.warning("Unable to read data from the failed nodes session: %s", e)
            return False
        if previous.is_empty():
            return False
        run.failed = previous
        return True

    def _persist(self, run: _Run) -> None:
        if not run.failed.is_empty():
            self.repository.save_failed_nodes(run.failed)
        if not run.rollback.rollback_info.is_empty():
            self.repository.save_rollback_session(run.rollback)

    # -- main loop -------------------------------------------------------------

    async def _execute_run(self, topology: UpgradeTopology, request: RunRequest) -> RunResult:
        run = _Run(request)
        try:
            self._initialize_state(topology, run)
            await self._walk(topology, run)
        finally:
            self._persist(run)

        status = RunStatus.ABORTED if self.cancelled else RunStatus.COMPLETED
        logger.info("%s %s", run.action, status)
        return RunResult(
            action=run.action,
            status=status,
            processed=run.processed,
            failures=tuple(run.failures),
            pending_upgrades=len(run.failed),
            rollback_eligible=len(run.rollback.rollback_info),
        )

    async def _walk(self, topology: UpgradeTopology, run: _Run) -> None:
        for group in topology.groups:
            if self.cancelled:
                break
            if not group.nodes:
                logger.info("No nodes for software group: %s", group.name)
                continue

            logger.info("Performing %s for software group: %s", run.action, group.name)
            do_pause = False
            for node in group.nodes:
                if not group.software:
                    continue
                if self.cancelled:
                    break
                for software in group.software:
                    if self.cancelled:
                        break
                    if self._process_pair(topology, run, node, software):
                        do_pause = True

            if self.cancelled:
                break
            pause = topology.common.group_pause
            if do_pause and pause > 0:
                logger.info("Pausing for %ss...", pause)
                await asyncio.to_thread(self.cancellation.wait, pause)

    def _should_skip(self, run: _Run, node: str, software: str) -> bool:
        if run.action == Action.ROLLBACK and not run.rollback.rollback_info.contains(node, software):
            return True
        if run.resume and not run.failed.contains(node, software):
            logger.info("Skipping software %s for node %s", software, node)
            return True
        return False

    def _process_pair(self, topology: UpgradeTopology, run: _Run, node: str, software: str) -> bool:
        """Returns False when the pair was skipped."""
        if self._should_skip(run, node, software):
            return False

        info = topology.node_upgrade_info(node, software)
        logger.info(_action_message(run.action, node, software))
        session = self.sessions.get_or_create(info.ssh_user, info.ssh_key, node)
        run.processed += 1

        bracket = run.action.brackets_with_stop_start
        if bracket:
            try:
                output = session.run(info.stop_cmd)
            except FleetShiftError as e:
                # unsafe to proceed without a clean stop
                run.record_failure(node, software, _STOP, e)
                return True
            logger.info("Node: %s, %s: %s", node, _STOP, output.strip())

        if not run.dry_run:
            self._perform(run, session, info)

        if bracket:
            try:
                output = session.run(info.start_cmd)
            except FleetShiftError as e:
                run.record_failure(node, software, _START, e)
                return True
            logger.info("Node: %s, %s: %s", node, _START, output.strip())
        return True

    def _perform(self, run: _Run, session: RemoteSessionPort, info: NodeUpgradeInfo) -> None:
        node, software = info.node, info.software
        actions = SoftwareActions(session, info)
        action = run.action
        try:
            if action.is_upgrade:
                actions.upgrade(run.suffix)
                logger.info("Upgraded node: %s with software %s successfully!", node, software)
                run.failed.remove(node, software)
                run.rollback.rollback_info.add(node, software)
            elif action == Action.ADD:
                actions.install()
                logger.info("Added software: %s to node: %s successfully", software, node)
            elif action == Action.DELETE_ROLLBACK:
                actions.delete_rollback(run.suffix)
                logger.info("Deleted rollback for node: %s, software: %s", node, software)
            elif action == Action.ROLLBACK:
                actions.rollback(run.suffix)
                logger.info("Rolled back node: %s with software: %s successfully", node, software)
                run.rollback.rollback_info.remove(node, software)
        except (FleetShiftError, OSError) as e:
            run.record_failure(node, software, action.value, e)

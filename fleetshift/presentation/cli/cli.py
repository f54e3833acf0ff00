"""
CLI Module

Architectural Intent:
- Command-line interface for FleetShift
- Entry point for all user interactions
- Delegates to the lifecycle use case via the composition root
- Supports --verbose/--debug flags for log level control

Exit codes: 0 completed, 1 precondition or setup failure, 130 aborted.
"""

import argparse
import asyncio
import logging
import sys
import traceback

from fleetshift.composition_root import create_container
from fleetshift.domain.exceptions import (
    FleetShiftError,
    InvalidActionError,
    PreflightError,
    TopologyError,
)
from fleetshift.domain.value_objects.action import Action
from fleetshift.infrastructure.cancellation import install_signal_handlers
from fleetshift.infrastructure.config import load_config
from fleetshift.infrastructure.logging import configure_logging
from fleetshift.infrastructure.topology_loader import load_topology_file, parse_duration

TITLE = "FleetShift: fleet-wide software upgrade and rollback"
EXIT_ABORTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fleetshift", description=TITLE)
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--mode", "-m",
        help="add | upgrade | resume-upgrade | rollback | delete-rollback",
    )
    parser.add_argument(
        "--topology", "-t", help="JSON topology file describing groups, nodes and software"
    )
    parser.add_argument(
        "--config", "-c", default=None, help="Path to FleetShift config (JSON)"
    )
    parser.add_argument(
        "--failed-nodes", help="File to load/save nodes that failed to upgrade"
    )
    parser.add_argument(
        "--rollback-file", help="Rollback session file for this session"
    )
    parser.add_argument(
        "--rollback-suffix", help="Suffix identifying this session's rollback files"
    )
    parser.add_argument(
        "--ssh-timeout", help="SSH connect timeout, e.g. 5s or 1m"
    )
    parser.add_argument(
        "--disable-node-verification", action="store_true",
        help="Disable node IP resolution verification",
    )
    parser.add_argument(
        "--disable-file-verification", action="store_true",
        help="Disable source file existence verification",
    )
    parser.add_argument(
        "--disable-target-dir-verification", action="store_true",
        help="Disable target directory existence verification",
    )
    parser.add_argument(
        "--dry-run", action=argparse.BooleanOptionalAction, default=None,
        help="Only stop and start the software on remote nodes (default: on)",
    )
    parser.add_argument("--log-file", help="Debug log file receiving every record")
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit structured JSON logs"
    )
    return parser


async def async_main():
    parser = build_parser()
    args = parser.parse_args()

    config = load_config(args.config)
    ssh_timeout = None
    if args.ssh_timeout:
        try:
            ssh_timeout = parse_duration(args.ssh_timeout)
        except TopologyError as e:
            parser.error(str(e))
    config = config.with_overrides(
        verification={
            "files": False if args.disable_file_verification else None,
            "nodes": False if args.disable_node_verification else None,
            "target_dirs": False if args.disable_target_dir_verification else None,
        },
        ssh={"timeout": ssh_timeout},
        state={
            "failed_nodes_file": args.failed_nodes,
            "rollback_file": args.rollback_file,
            "rollback_suffix": args.rollback_suffix,
        },
        run={"action": args.mode, "dry_run": args.dry_run},
    )

    # Configure logging based on flags
    if args.debug:
        level = logging.DEBUG
    elif args.verbose:
        level = logging.INFO
    else:
        level = logging.getLevelName(config.log_level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    configure_logging(
        level=level,
        json_format=args.json_logs or config.json_logs,
        log_file=args.log_file or config.log_file or None,
    )

    verbose = args.verbose or args.debug

    if not args.topology:
        parser.print_help()
        return

    print(f"[*] {TITLE}")

    try:
        action = Action.parse(config.run.action)
    except InvalidActionError as e:
        print(f"[-] {e}")
        sys.exit(1)

    try:
        topology = load_topology_file(args.topology)
    except TopologyError as e:
        print(f"[-] {e}")
        sys.exit(1)

    container = create_container(config)
    request = container.build_request()
    if request.dry_run:
        print("[*] Dry run: software will only be stopped and started.")
    print(f"[*] Session {container.session_suffix}: {action} using {args.topology}")
    print(f"[*] Rollback file: {container.repository.rollback_file}")

    try:
        with install_signal_handlers(container.cancellation):
            result = await container.run_lifecycle.execute(topology, request)
    except PreflightError as e:
        print(f"[-] {e.report()}")
        sys.exit(1)
    except FleetShiftError as e:
        print(f"[-] {e}")
        if verbose:
            traceback.print_exc()
        sys.exit(1)

    for failure in result.failures:
        print(f"[-] {failure}")
    if result.completed:
        print(f"[+] {result.summary()}")
    else:
        print(f"[-] {result.summary()}")
    if result.pending_upgrades:
        print(f"[*] {result.pending_upgrades} upgrade(s) pending in {container.repository.failed_nodes_file}")
    if not result.completed:
        sys.exit(EXIT_ABORTED)


def main():
    asyncio.run(async_main())


if __name__ == "__main__":
    main()

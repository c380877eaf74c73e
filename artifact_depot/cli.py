"""
Command-line interface for the artifact depot.
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import DepotConfiguration
from .depot import Depot
from .errors import DepotError
from .models import RefreshResponse
from .reporting import (
    export_dependencies_csv,
    export_events_csv,
    export_versions_csv,
    print_summary,
    save_response_json,
    summarize,
)


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Refresh artifact metadata and resolve dependency graphs"
    )

    parser.add_argument(
        "--repository-url",
        default=None,
        help="Maven repository base URL. Default: DEPOT_REPOSITORY_URL or Maven Central"
    )

    parser.add_argument(
        "--state-file",
        default="./depot-state.json",
        help="JSON file holding depot state between runs. Default: ./depot-state.json"
    )

    parser.add_argument(
        "--output-dir",
        default="./output",
        help="Output directory for reports. Default: ./output"
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of concurrent refresh workers"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. Default: INFO"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_refresh_flags(sub, all_versions=False):
        sub.add_argument("--full-update", action="store_true", help="Reprocess unchanged files")
        sub.add_argument("--transitive", action="store_true", help="Queue refreshes for dependencies")
        if all_versions:
            sub.add_argument(
                "--all-versions",
                action="store_true",
                help="Queue every upstream release, not only those missing from the store"
            )

    version = subparsers.add_parser("refresh-version", help="Refresh one project version")
    version.add_argument("group_id")
    version.add_argument("artifact_id")
    version.add_argument("version_id")
    version.add_argument("--project-id", default=None, help="Project id used when the project is new")
    add_refresh_flags(version)

    project = subparsers.add_parser("refresh-project", help="Refresh every version of a project")
    project.add_argument("group_id")
    project.add_argument("artifact_id")
    add_refresh_flags(project, all_versions=True)

    add_refresh_flags(
        subparsers.add_parser("refresh-all", help="Refresh every version of every project"),
        all_versions=True,
    )
    add_refresh_flags(
        subparsers.add_parser("refresh-snapshots", help="Refresh the default snapshot of every project")
    )

    transitive = subparsers.add_parser(
        "update-transitive", help="Recompute the transitive dependencies of a stored version"
    )
    transitive.add_argument("group_id")
    transitive.add_argument("artifact_id")
    transitive.add_argument("version_id")

    subparsers.add_parser("reap-leases", help="Delete expired refresh leases")

    evict = subparsers.add_parser("evict-oldest", help="Evict the oldest releases of a project")
    evict.add_argument("group_id")
    evict.add_argument("artifact_id")
    evict.add_argument("--keep", type=int, required=True, help="Number of releases to keep")

    return parser


def run_command(args: argparse.Namespace, depot: Depot) -> RefreshResponse:
    response = RefreshResponse()
    if args.command == "refresh-version":
        project = depot.projects.find_project(args.group_id, args.artifact_id)
        if project is None:
            event_id = depot.notifications.notify(
                args.project_id, args.group_id, args.artifact_id, args.version_id,
                full_update=args.full_update, transitive=args.transitive,
            )
            response.add_message(f"queued new project version {args.version_id}, event id :[{event_id}]")
        else:
            response.combine(
                depot.refresh.refresh_version_for_project(
                    args.group_id, args.artifact_id, args.version_id,
                    full_update=args.full_update, transitive=args.transitive,
                )
            )
    elif args.command == "refresh-project":
        response.combine(
            depot.refresh.refresh_all_versions_for_project(
                args.group_id, args.artifact_id,
                full_update=args.full_update, all_versions=args.all_versions,
                transitive=args.transitive,
            )
        )
    elif args.command == "refresh-all":
        response.combine(
            depot.refresh.refresh_all_versions_for_all_projects(
                full_update=args.full_update, all_versions=args.all_versions,
                transitive=args.transitive,
            )
        )
    elif args.command == "refresh-snapshots":
        response.combine(
            depot.refresh.refresh_default_snapshots_for_all_projects(
                full_update=args.full_update, transitive=args.transitive,
            )
        )
    elif args.command == "update-transitive":
        record = depot.dependencies.update_transitive_dependencies(
            args.group_id, args.artifact_id, args.version_id
        )
        response.add_message(
            f"{record.gav} has {len(record.transitive_report.transitive_dependencies)} "
            f"transitive dependencies, valid: {record.transitive_report.valid}"
        )
        return response
    elif args.command == "reap-leases":
        return response.add_message(f"{depot.leases.reap_expired()} expired leases removed")
    elif args.command == "evict-oldest":
        return response.combine(
            depot.purge.evict_oldest_project_versions(args.group_id, args.artifact_id, args.keep)
        )

    for request in depot.notifications.run_until_empty():
        response.combine(request.responses.get(request.attempt))
    return response


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = DepotConfiguration.from_env().with_overrides(
            repository_url=args.repository_url, workers=args.workers
        )
    except DepotError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    state_file = Path(args.state_file)
    output_dir = Path(args.output_dir)
    depot = Depot.from_state(config, state_file, show_progress=True)

    try:
        response = run_command(args, depot)
    except (DepotError, LookupError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        depot.save(state_file)

    records = depot.projects.all_versions()
    export_versions_csv(records, output_dir)
    export_dependencies_csv(records, output_dir)
    export_events_csv(depot.notifications.history, output_dir)
    response_file = save_response_json(response, output_dir, args.command)
    print_summary(args.command, summarize(records, response))
    print(f"Response saved to: {response_file}")

    if response.has_errors():
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
Command-line interface for gitpatcher.

This module is responsible for argument parsing, logging setup and
mapping errors to exit codes; the work itself happens in workflow.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import Config, Context
from .domain import ReconcileResult
from .errors import ApplyError, GitPatcherError
from .logging_utils import configure_logging
from .workflow import run_apply, run_apply_patch, run_update

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFLICT = 2
EXIT_INTERRUPTED = 130


def build_arg_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--submodule-path",
        type=Path,
        default=Path("."),
        help="Location of the vendored git tree (default: current directory).",
    )
    common.add_argument(
        "--upstream-ref",
        default="upstream/main",
        help="Branch or tag marking the upstream base (default: upstream/main).",
    )
    common.add_argument(
        "--patch-dir",
        type=Path,
        default=Path("patches"),
        help="Directory holding the patch files (default: patches).",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be specified multiple times).",
    )

    parser = argparse.ArgumentParser(
        prog="gitpatcher",
        description=(
            "Keep the local modifications of a vendored git tree as a "
            "directory of patch files on top of its upstream history."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    update = subparsers.add_parser(
        "update",
        parents=[common],
        help="Regenerate the patch directory from the submodule's commits.",
    )
    update.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the planned additions, updates and deletions without writing.",
    )
    update.add_argument(
        "--no-stage",
        dest="stage",
        action="store_false",
        help="Do not stage the changed patch files with git.",
    )

    apply = subparsers.add_parser(
        "apply",
        aliases=["rebuild"],
        parents=[common],
        help="Replay the patch directory onto the submodule's worktree.",
    )
    apply.add_argument(
        "--reset",
        action="store_true",
        help="Hard-reset the submodule to the upstream reference before applying.",
    )
    apply.add_argument(
        "--commit",
        action="store_true",
        help="Record each applied patch as a commit in the submodule.",
    )
    apply.add_argument(
        "--max-offset",
        type=int,
        default=None,
        help="Maximum line drift tolerated when matching hunks (default: unlimited).",
    )
    apply.add_argument(
        "--patch",
        dest="patch_file",
        type=Path,
        default=None,
        metavar="FILE",
        help="Apply only this patch file instead of the whole patch directory.",
    )

    return parser


def _print_result(result: ReconcileResult, dry_run: bool) -> None:
    plan = result.plan
    if plan.is_empty():
        print("Patches are up to date.")
        return

    verb = "Would" if dry_run else "Did"
    for change in plan.changes:
        if change.action == "update" and change.old_name and change.old_name != change.name:
            print(f"{verb} update {change.name} (was {change.old_name})")
        else:
            print(f"{verb} {change.action} {change.name}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    is_update = args.command == "update"
    config = Config(
        submodule_path=args.submodule_path,
        upstream_ref=args.upstream_ref,
        patch_dir=args.patch_dir,
        dry_run=is_update and args.dry_run,
        stage=is_update and args.stage,
        commit=not is_update and args.commit,
        reset=not is_update and args.reset,
        patch_file=None if is_update else args.patch_file,
        max_offset=None if is_update else args.max_offset,
        verbosity=args.verbose,
    )

    configure_logging(verbosity=config.verbosity)
    ctx = Context(config=config, log=logging.getLogger("gitpatcher"))

    try:
        if is_update:
            _print_result(run_update(ctx), config.dry_run)
        elif config.patch_file is not None:
            run_apply_patch(ctx)
            print(f"Applied: {config.patch_file}")
        else:
            count = run_apply(ctx)
            print(f"Successfully applied {count} patches!")
    except KeyboardInterrupt:
        # Graceful shutdown on Ctrl+C
        return EXIT_INTERRUPTED
    except ApplyError as exc:
        print(f"gitpatcher: conflict: {exc}", file=sys.stderr)
        return EXIT_CONFLICT
    except GitPatcherError as exc:
        print(f"gitpatcher: error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())

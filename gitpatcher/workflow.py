"""
High-level orchestration for gitpatcher.

run_update regenerates the patch directory from the submodule's history:
  - resolve the linear commit range on top of the upstream base,
  - extract one patch per commit,
  - reconcile the result with the patch directory and stage it.

run_apply rebuilds the patched tree from the patch directory alone;
run_apply_patch replays one patch file.
"""

from __future__ import annotations

from typing import Optional

from .applier import PatchApplier
from .config import Context
from .domain import PatchRecord, ReconcileResult
from .errors import GitError, RangeError, StoreError
from .extractor import PatchExtractor
from .git_adapter import GitRepo
from .range_resolver import resolve_range
from .reconciler import Reconciler
from .store import PatchStore, read_patch_file


def run_update(ctx: Context, submodule: Optional[GitRepo] = None) -> ReconcileResult:
    """
    Regenerate patches and bring the patch directory up to date.

    Extraction completes for the whole range before the store is read or
    written, so a bad range never leaves a half-updated directory.
    """

    config = ctx.config
    ctx.log.debug("Starting update with config: %s", config)

    submodule = submodule or GitRepo(config.submodule_path)
    commit_range = resolve_range(submodule, config.upstream_ref, ctx)
    patch_set = PatchExtractor(submodule, ctx).extract_all(commit_range)

    store_repo = None
    if config.stage and not config.dry_run:
        try:
            store_repo = GitRepo.discover(config.patch_dir)
        except GitError as exc:
            raise StoreError(
                f"patch directory {config.patch_dir} is not inside a git repository: {exc}"
            ) from exc

    store = PatchStore(config.patch_dir, ctx, repo=store_repo)
    return Reconciler(store, ctx).reconcile(
        patch_set, dry_run=config.dry_run, stage=config.stage
    )


def run_apply(ctx: Context, submodule: Optional[GitRepo] = None) -> int:
    """
    Replay the stored patches onto the submodule's worktree.

    With config.reset the submodule is first hard-reset to the upstream
    reference. Returns the number of patches applied.
    """

    config = ctx.config
    ctx.log.debug("Starting apply with config: %s", config)

    submodule = submodule or GitRepo(config.submodule_path)
    if config.reset:
        _reset_to_upstream(ctx, submodule)

    patch_set = PatchStore(config.patch_dir, ctx).read()
    return _applier(ctx, submodule).apply_set(patch_set)


def run_apply_patch(ctx: Context, submodule: Optional[GitRepo] = None) -> PatchRecord:
    """
    Replay the single patch file named by config.patch_file.

    The file need not live in the patch directory or follow its naming
    rules. Returns the record that was applied.
    """

    config = ctx.config
    if config.patch_file is None:
        raise StoreError("no patch file given")

    submodule = submodule or GitRepo(config.submodule_path)
    if config.reset:
        _reset_to_upstream(ctx, submodule)

    record = read_patch_file(config.patch_file)
    _applier(ctx, submodule).apply_record(record)
    return record


def _reset_to_upstream(ctx: Context, submodule: GitRepo) -> None:
    upstream_ref = ctx.config.upstream_ref
    base = submodule.resolve_commit(upstream_ref)
    if base is None:
        raise RangeError(f"upstream reference {upstream_ref!r} does not resolve to a commit")
    submodule.reset_hard(base)
    ctx.log.info("Reset %s to %s", submodule.path, upstream_ref)


def _applier(ctx: Context, submodule: GitRepo) -> PatchApplier:
    return PatchApplier(
        submodule.path,
        ctx,
        repo=submodule,
        commit=ctx.config.commit,
        max_offset=ctx.config.max_offset,
    )

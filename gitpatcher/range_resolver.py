"""
Resolution of the commit range to convert into patches.

The range runs from the upstream base (exclusive) to HEAD (inclusive)
and must be a single linear chain: every commit has exactly one parent,
and that parent is the previous commit of the range.
"""

from __future__ import annotations

from typing import List

from .config import Context
from .domain import Commit, CommitRange
from .errors import GitError, RangeError
from .git_adapter import GitRepo


def resolve_range(repo: GitRepo, upstream_ref: str, ctx: Context) -> CommitRange:
    """
    Return the linear list of commits on top of upstream_ref, oldest first.

    Raises RangeError when the base is missing, is not an ancestor of
    HEAD, or when the path from base to HEAD contains a merge. A paused
    rebase is allowed: the range then holds only the commits rebased so
    far and is marked partial. Any other paused operation is refused.
    """

    log = ctx.log.getChild("range")

    try:
        in_progress = repo.operation_in_progress()
        partial = in_progress == "rebase"
        if partial:
            log.warning("Rebase in progress; saving only the patches for commits rebased so far")
        elif in_progress is not None:
            raise RangeError(
                f"{repo.path} has a {in_progress} in progress; "
                "finish or abort it before regenerating patches"
            )

        base = repo.resolve_commit(upstream_ref)
        if base is None:
            raise RangeError(f"upstream reference {upstream_ref!r} does not resolve to a commit")

        head = repo.head()
        if not repo.is_ancestor(base, head):
            raise RangeError(
                f"upstream reference {upstream_ref!r} ({base[:12]}) is not an "
                f"ancestor of HEAD ({head[:12]})"
            )

        commit_ids = repo.rev_list(base, head)
        commits = [repo.read_commit(commit_id) for commit_id in commit_ids]
    except GitError as exc:
        raise RangeError(f"failed to resolve commit range: {exc}") from exc

    _check_linear(base, head, commits)

    log.info(
        "Resolved %d commits between %s and HEAD (%s)",
        len(commits),
        upstream_ref,
        head[:12],
    )
    return CommitRange(base=base, head=head, commits=tuple(commits), partial=partial)


def _check_linear(base: str, head: str, commits: List[Commit]) -> None:
    for commit in commits:
        if len(commit.parents) != 1:
            raise RangeError(
                f"commit {commit.id[:12]} has {len(commit.parents)} parents; "
                "merge commits are not supported in the patch range"
            )

    expected_parent = base
    for commit in commits:
        if commit.parent != expected_parent:
            raise RangeError(
                f"commit {commit.id[:12]} does not follow {expected_parent[:12]}; "
                "the patch range must be a single linear history"
            )
        expected_parent = commit.id

    if commits and commits[-1].id != head:
        raise RangeError("the patch range does not end at HEAD")

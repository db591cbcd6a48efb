"""
Conversion of commits into patch records.

Commits are processed strictly in range order: the diff for each commit
is taken against the tree of the commit before it (the upstream base for
the first one), so sequence numbers follow history.
"""

from __future__ import annotations

from typing import List, Optional

from .config import Context
from .domain import Commit, CommitRange, PatchRecord, PatchSet
from .errors import ExtractionError, GitError
from .git_adapter import GitRepo
from .patch_format import (
    build_record,
    format_author,
    format_date,
    normalize_diff,
    split_message,
)


class PatchExtractor:
    """
    Builds PatchRecords from commits of a single repository.
    """

    def __init__(self, repo: GitRepo, ctx: Context) -> None:
        self.repo = repo
        self.log = ctx.log.getChild("extract")

    def extract(self, commit: Commit, sequence: int, parent: Optional[str] = None) -> PatchRecord:
        """
        Convert one commit into the PatchRecord numbered sequence.

        parent defaults to the commit's own first parent.
        """

        parent = parent or commit.parent
        if parent is None:
            raise ExtractionError(f"commit {commit.id[:12]} has no parent to diff against")

        subject, body = split_message(commit.id, commit.message)

        try:
            raw_diff = self.repo.diff_trees(parent, commit.id)
        except GitError as exc:
            raise ExtractionError(f"failed to diff commit {commit.id[:12]}: {exc}") from exc

        try:
            date = format_date(commit)
        except (ValueError, OverflowError, OSError) as exc:
            raise ExtractionError(
                f"commit {commit.id[:12]} has an unusable author date: {exc}"
            ) from exc

        record = build_record(
            sequence=sequence,
            commit_id=commit.id,
            author=format_author(commit.author_name, commit.author_email),
            date=date,
            subject=subject,
            body=body,
            diff=normalize_diff(raw_diff),
        )
        self.log.debug("Extracted %s from %s", record.file_name, commit.id[:12])
        return record

    def extract_all(self, commit_range: CommitRange) -> PatchSet:
        """
        Extract every commit of the range into a contiguous PatchSet.

        The first failure aborts the whole pass; no partial set is
        returned.
        """

        records: List[PatchRecord] = []
        parent = commit_range.base
        for sequence, commit in enumerate(commit_range.commits, start=1):
            records.append(self.extract(commit, sequence, parent))
            parent = commit.id

        self.log.info("Extracted %d patches", len(records))
        return PatchSet(
            records=tuple(records),
            submodule_path=str(self.repo.path),
            base_commit=commit_range.base,
            partial=commit_range.partial,
        )

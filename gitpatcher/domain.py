"""
Core domain models for gitpatcher.

These dataclasses describe commits, patch records, parsed diffs and
reconciliation plans. They avoid any direct git or filesystem access so
they can be shared by every stage of the pipeline.

All text that originates from git (messages, author names, paths, diff
content) is kept as bytes: none of it is guaranteed to be valid UTF-8.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional, Tuple

from .errors import StoreError


@dataclass(frozen=True)
class Commit:
    """
    A commit read from version-control history.

    utc_offset is the author's timezone exactly as git stores it
    (e.g. "+0200").
    """

    id: str
    author_name: bytes
    author_email: bytes
    timestamp: int
    utc_offset: str
    message: bytes
    parents: Tuple[str, ...] = ()

    @property
    def parent(self) -> Optional[str]:
        return self.parents[0] if self.parents else None

    def authored_at(self) -> datetime:
        sign = -1 if self.utc_offset.startswith("-") else 1
        digits = self.utc_offset.lstrip("+-")
        offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:4]))
        tz = timezone(sign * offset)
        return datetime.fromtimestamp(self.timestamp, tz)


@dataclass(frozen=True)
class CommitRange:
    """
    The linear run of commits between the upstream base and HEAD.

    commits are ordered oldest first; commits[0].parent == base. partial
    is set while a rebase is paused: HEAD then only carries the commits
    rebased so far.
    """

    base: str
    head: str
    commits: Tuple[Commit, ...] = ()
    partial: bool = False


@dataclass(frozen=True)
class PatchRecord:
    """
    One patch file: header metadata plus a unified diff.

    content is the exact byte content of the patch file and content_hash
    the digest used to decide whether a stored file needs rewriting.
    """

    sequence: int
    commit_id: str
    file_name: str
    author: bytes
    date: str
    subject: bytes
    body: bytes
    diff: bytes
    content: bytes
    content_hash: str


@dataclass(frozen=True)
class PatchSet:
    """
    An ordered series of patch records numbered 1..n.

    A partial set covers only the first n patches of a longer series;
    stored patches past its end are kept rather than deleted.
    """

    records: Tuple[PatchRecord, ...] = ()
    submodule_path: Optional[str] = None
    base_commit: Optional[str] = None
    partial: bool = False

    def __post_init__(self) -> None:
        for expected, record in enumerate(self.records, start=1):
            if record.sequence != expected:
                raise StoreError(
                    f"patch sequence is not contiguous: expected {expected}, "
                    f"found {record.sequence} ({record.file_name})"
                )

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


@dataclass
class HunkLine:
    """
    A single line within a diff hunk.

    content excludes the leading marker and the trailing newline;
    no_newline is set when the line is followed by a
    "\\ No newline at end of file" marker.
    """

    line_type: Literal["+", "-", " "]
    content: bytes
    no_newline: bool = False


@dataclass
class Hunk:
    """
    A contiguous block of changes in a single file.
    """

    header: bytes
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: List[HunkLine] = field(default_factory=list)

    def old_lines(self) -> List[bytes]:
        return [_with_eol(l) for l in self.lines if l.line_type != "+"]

    def new_lines(self) -> List[bytes]:
        return [_with_eol(l) for l in self.lines if l.line_type != "-"]


def _with_eol(line: HunkLine) -> bytes:
    return line.content if line.no_newline else line.content + b"\n"


@dataclass(frozen=True)
class BinaryHunk:
    """
    One block of a "GIT binary patch" section, already inflated.

    kind "literal" carries the full file content; "delta" carries git delta
    instructions against the other side. size is the inflated length.
    """

    kind: Literal["literal", "delta"]
    size: int
    data: bytes


@dataclass
class FilePatch:
    """
    All hunks and metadata associated with a single file in a diff.
    """

    path_old: Optional[bytes]
    path_new: Optional[bytes]
    change_type: Literal["add", "modify", "delete", "rename"]
    is_binary: bool = False
    old_mode: Optional[str] = None
    new_mode: Optional[str] = None
    hunks: List[Hunk] = field(default_factory=list)
    binary_forward: Optional[BinaryHunk] = None
    binary_reverse: Optional[BinaryHunk] = None

    @property
    def display_path(self) -> str:
        path = self.path_new if self.path_new is not None else self.path_old
        return (path or b"").decode("utf-8", "backslashreplace")


ChangeAction = Literal["add", "update", "delete"]


@dataclass(frozen=True)
class PatchChange:
    """
    A single planned mutation of the patch directory.

    For "update", old_name differs from name when the subject (and thus
    the file name) changed at this sequence number.
    """

    action: ChangeAction
    sequence: int
    name: str
    old_name: Optional[str] = None
    record: Optional[PatchRecord] = None


@dataclass
class ReconcilePlan:
    """
    The minimal set of writes and deletes that brings the store in line
    with a freshly extracted PatchSet.
    """

    changes: List[PatchChange] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.changes

    def by_action(self, action: ChangeAction) -> List[PatchChange]:
        return [c for c in self.changes if c.action == action]


@dataclass
class ReconcileResult:
    """
    What a reconciliation run actually did to the filesystem.
    """

    plan: ReconcilePlan
    written: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    staged: List[str] = field(default_factory=list)

"""
Replay of stored patches onto a clean tree.

Each record's diff is parsed into hunks and applied in memory; files are
only written once every hunk of the record has matched, so a failing
record leaves the tree exactly as the previous record left it. Replay
stops at the first failure.

Hunk matching follows the usual patch-tool rules: the hunk's old-side
lines (context and removals) must match exactly, but may be found at a
different line than the header says. The search starts at the expected
line and moves outward, nearest offset first.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .binary_patch import apply_block
from .config import Context
from .diff_parser import parse_unified_diff
from .domain import FilePatch, Hunk, PatchRecord, PatchSet
from .errors import ApplyError, BinaryPatchError, DiffParseError
from .git_adapter import GitRepo
from .patch_format import split_author

SYMLINK_MODE = "120000"
EXECUTABLE_MODE = "100755"


class _HunkMismatch(Exception):
    def __init__(self, hunk_index: int, reason: str) -> None:
        super().__init__(reason)
        self.hunk_index = hunk_index
        self.reason = reason


class _FileState:
    """Pending content of one path while a record is being applied."""

    __slots__ = ("content", "symlink", "mode")

    def __init__(self, content: Optional[bytes], symlink: bool = False, mode: Optional[str] = None):
        self.content = content
        self.symlink = symlink
        self.mode = mode


def split_lines(content: bytes) -> List[bytes]:
    """
    Split file content into lines, keeping each trailing newline.

    Only b"\n" ends a line, matching how git counts lines in a diff.
    """

    if not content:
        return []
    lines = [line + b"\n" for line in content.split(b"\n")]
    last = lines.pop()
    if last != b"\n":
        lines.append(last[:-1])
    return lines


def apply_hunks(
    lines: List[bytes], hunks: Sequence[Hunk], max_offset: Optional[int] = None
) -> List[bytes]:
    """
    Apply hunks to a file given as a list of lines (with line endings).

    Raises _HunkMismatch carrying the 1-based index of the first hunk
    whose old side cannot be located.
    """

    result: List[bytes] = []
    cursor = 0
    drift = 0

    for index, hunk in enumerate(hunks, start=1):
        old = hunk.old_lines()
        new = hunk.new_lines()

        # A zero-length old side means "insert after line old_start".
        expected = hunk.old_start if hunk.old_count == 0 else hunk.old_start - 1
        expected += drift

        position = _locate(lines, old, expected, cursor, max_offset)
        if position is None:
            header = hunk.header.decode("utf-8", "replace")
            raise _HunkMismatch(index, f"context of {header} does not match")

        drift = position - (expected - drift)
        result.extend(lines[cursor:position])
        result.extend(new)
        cursor = position + len(old)

    result.extend(lines[cursor:])
    return result


def _locate(
    lines: List[bytes],
    old: List[bytes],
    expected: int,
    floor: int,
    max_offset: Optional[int],
) -> Optional[int]:
    last_start = len(lines) - len(old)
    if last_start < floor:
        return None

    if not old:
        return min(max(expected, floor), len(lines))

    limit = max_offset if max_offset is not None else len(lines) + abs(expected)
    width = len(old)
    for offset in range(limit + 1):
        for candidate in (expected - offset, expected + offset) if offset else (expected,):
            if floor <= candidate <= last_start and lines[candidate : candidate + width] == old:
                return candidate
    return None


class PatchApplier:
    """
    Applies PatchRecords to the worktree rooted at tree_root.

    With commit=True each applied record is also committed through repo,
    reusing the author, date and message stored in the patch.
    """

    def __init__(
        self,
        tree_root: Path,
        ctx: Context,
        repo: Optional[GitRepo] = None,
        commit: bool = False,
        max_offset: Optional[int] = None,
    ) -> None:
        if commit and repo is None:
            raise ValueError("committing applied patches requires a repository")
        self.tree_root = Path(tree_root)
        self.repo = repo
        self.commit = commit
        self.max_offset = max_offset
        self.log = ctx.log.getChild("apply")

    def apply_set(self, patch_set: PatchSet) -> int:
        """
        Apply every record in sequence order; returns the number applied.

        Raises ApplyError at the first record that does not apply; records
        before it stay applied.
        """

        count = 0
        for record in patch_set:
            self.apply_record(record)
            count += 1
        self.log.info("Successfully applied %d patches", count)
        return count

    def apply_record(self, record: PatchRecord) -> None:
        self.log.info("Applying %s", record.file_name)

        try:
            file_patches = parse_unified_diff(record.diff)
        except DiffParseError as exc:
            raise ApplyError(
                f"malformed diff: {exc}", sequence=record.sequence, patch_name=record.file_name
            ) from exc

        pending: Dict[bytes, _FileState] = {}
        for file_patch in file_patches:
            self._apply_file(record, file_patch, pending)

        self._write(record, pending)

        if self.commit:
            self._commit(record)

    def _apply_file(
        self, record: PatchRecord, file_patch: FilePatch, pending: Dict[bytes, _FileState]
    ) -> None:
        def fail(message: str, hunk_index: Optional[int] = None) -> ApplyError:
            return ApplyError(
                message,
                sequence=record.sequence,
                patch_name=record.file_name,
                path=file_patch.display_path,
                hunk_index=hunk_index,
            )

        for path in (file_patch.path_old, file_patch.path_new):
            if path is not None and not _is_safe_path(path):
                raise fail("path escapes the tree")

        old_path = file_patch.path_old or file_patch.path_new
        new_path = file_patch.path_new or file_patch.path_old

        try:
            if file_patch.change_type == "add":
                if self._current(new_path, pending).content is not None:
                    raise fail("file to be created already exists", 1 if file_patch.hunks else None)
                source = _FileState(b"")
            else:
                source = self._current(old_path, pending)
                if source.content is None:
                    raise fail("file to be patched does not exist", 1 if file_patch.hunks else None)
        except OSError as exc:
            raise fail(f"cannot read file: {exc}") from exc

        if file_patch.is_binary:
            content = self._apply_binary(file_patch, source.content, fail)
        else:
            lines = split_lines(source.content)
            try:
                patched = apply_hunks(lines, file_patch.hunks, self.max_offset)
            except _HunkMismatch as exc:
                raise fail(exc.reason, exc.hunk_index) from None
            content = b"".join(patched)

        new_mode = file_patch.new_mode

        if file_patch.change_type == "delete":
            if content:
                raise fail("file to be deleted has unexpected content", len(file_patch.hunks) or None)
            pending[old_path] = _FileState(None)
            return

        if file_patch.change_type == "rename":
            pending[old_path] = _FileState(None)

        symlink = new_mode == SYMLINK_MODE if new_mode else source.symlink
        pending[new_path] = _FileState(content, symlink=symlink, mode=new_mode)

    def _apply_binary(self, file_patch: FilePatch, old: bytes, fail) -> bytes:
        forward = file_patch.binary_forward
        if forward is None:
            raise fail("binary diff carries no data; it was not made with --binary")

        try:
            new = apply_block(forward, old)
            reverse = file_patch.binary_reverse
            if reverse is not None and apply_block(reverse, new) != old:
                raise fail("binary file does not match the patch's preimage")
        except BinaryPatchError as exc:
            raise fail(str(exc)) from exc
        return new

    def _current(self, path: bytes, pending: Dict[bytes, _FileState]) -> _FileState:
        if path in pending:
            return pending[path]

        full = self._full_path(path)
        if full.is_symlink():
            return _FileState(os.fsencode(os.readlink(full)), symlink=True)
        if full.is_file():
            return _FileState(full.read_bytes())
        return _FileState(None)

    def _full_path(self, path: bytes) -> Path:
        return self.tree_root / os.fsdecode(path)

    def _write(self, record: PatchRecord, pending: Dict[bytes, _FileState]) -> None:
        """
        Flush a record's pending states to disk.

        Deletions run first, deepest path first, so a directory replaced by
        a file (or the reverse) is out of the way before the write.
        """

        removed = [path for path, state in pending.items() if state.content is None]
        removed.sort(key=lambda path: path.count(b"/"), reverse=True)
        written = [(path, state) for path, state in pending.items() if state.content is not None]

        for path in removed:
            try:
                self._remove(path)
            except OSError as exc:
                raise _io_error(record, path, exc) from exc

        for path, state in written:
            try:
                self._write_file(path, state)
            except OSError as exc:
                raise _io_error(record, path, exc) from exc

    def _remove(self, path: bytes) -> None:
        full = self._full_path(path)
        if full.is_symlink() or full.is_file():
            full.unlink()
            self._prune_empty_dirs(full.parent)

    def _write_file(self, path: bytes, state: _FileState) -> None:
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        if full.is_symlink() or (state.symlink and full.exists()):
            full.unlink()

        if state.symlink:
            os.symlink(os.fsdecode(state.content), full)
            return

        full.write_bytes(state.content)
        if state.mode is not None:
            _set_executable(full, state.mode == EXECUTABLE_MODE)

    def _prune_empty_dirs(self, directory: Path) -> None:
        root = self.tree_root.resolve()
        while directory.resolve() != root and directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()
            directory = directory.parent

    def _commit(self, record: PatchRecord) -> None:
        name, email = split_author(record.author)
        message = record.subject
        if record.body:
            message += b"\n\n" + record.body
        message += b"\n"
        commit_id = self.repo.commit_all(message, name, email, record.date)
        self.log.debug("Committed %s as %s", record.file_name, commit_id[:12])


def _is_safe_path(path: bytes) -> bool:
    if path.startswith(b"/"):
        return False
    return all(part not in (b"", b".", b"..", b".git") for part in path.split(b"/"))


def _set_executable(path: Path, executable: bool) -> None:
    mode = path.stat().st_mode
    exec_bits = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
    if executable:
        # Mirror git: grant execute wherever read is granted.
        mode |= (mode & (stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH)) >> 2
    else:
        mode &= ~exec_bits
    path.chmod(mode)


def _io_error(record: PatchRecord, path: bytes, exc: OSError) -> ApplyError:
    return ApplyError(
        f"cannot update the tree: {exc}",
        sequence=record.sequence,
        patch_name=record.file_name,
        path=path.decode("utf-8", "backslashreplace"),
    )

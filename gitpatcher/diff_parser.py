"""
Unified diff parsing for gitpatcher.

The parser converts the diff section of a patch file into FilePatch and
Hunk objects for the applier.

It targets the format produced by `git diff-tree -p`: per-file
`diff --git` sections with optional mode / new / deleted / rename
metadata, `---` / `+++` headers, and hunks. Hunk boundaries are taken
from the line counts in the hunk header rather than from the next
`@@` line, so content lines that merely look like headers are safe.
`GIT binary patch` sections (from `--binary`) are decoded into
BinaryHunk blocks.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple

from .binary_patch import decode_block
from .domain import BinaryHunk, FilePatch, Hunk, HunkLine
from .errors import BinaryPatchError, DiffParseError

_HUNK_HEADER_RE = re.compile(
    rb"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))?"
    rb" \+(?P<new_start>\d+)(?:,(?P<new_count>\d+))?"
    rb" @@"
)

_BINARY_HEADER_RE = re.compile(rb"^(?P<kind>literal|delta) (?P<size>\d+)$")

_DIFF_START = b"diff --git "

_ESCAPES = {
    ord("a"): 7,
    ord("b"): 8,
    ord("t"): 9,
    ord("n"): 10,
    ord("v"): 11,
    ord("f"): 12,
    ord("r"): 13,
    ord('"'): ord('"'),
    ord("\\"): ord("\\"),
}


def parse_unified_diff(raw_diff: bytes) -> List[FilePatch]:
    """
    Parse a git unified diff into a list of FilePatch objects.

    Any preamble before the first `diff --git` line is ignored.
    """

    lines = raw_diff.split(b"\n")
    if lines and lines[-1] == b"":
        lines.pop()

    files: List[FilePatch] = []
    i = 0
    while i < len(lines) and not lines[i].startswith(_DIFF_START):
        i += 1

    while i < len(lines):
        if not lines[i].startswith(_DIFF_START):
            raise DiffParseError(f"unexpected line outside of a file section: {lines[i]!r}")
        file_patch, i = _parse_single_file_diff(lines, i)
        files.append(file_patch)

    return files


def unquote_path(raw: bytes) -> bytes:
    """
    Undo git's C-style quoting of a path, if present.

    git quotes paths with unusual bytes as "a/caf\\303\\251.txt".
    """

    if not (raw.startswith(b'"') and raw.endswith(b'"') and len(raw) >= 2):
        return raw

    body = raw[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        byte = body[i]
        if byte != ord("\\"):
            out.append(byte)
            i += 1
            continue
        if i + 1 >= len(body):
            raise DiffParseError(f"dangling escape in quoted path: {raw!r}")
        nxt = body[i + 1]
        if ord("0") <= nxt <= ord("7"):
            octal = body[i + 1 : i + 4]
            out.append(int(octal, 8))
            i += 4
        elif nxt in _ESCAPES:
            out.append(_ESCAPES[nxt])
            i += 2
        else:
            raise DiffParseError(f"unknown escape in quoted path: {raw!r}")
    return bytes(out)


def _strip_prefix(path: bytes, prefix: bytes) -> Optional[bytes]:
    path = unquote_path(path)
    if path == b"/dev/null":
        return None
    if path.startswith(prefix):
        return path[len(prefix) :]
    return path


def _paths_from_header(header: bytes) -> Tuple[Optional[bytes], Optional[bytes]]:
    """
    Recover the paths from a `diff --git a/X b/Y` line.

    Only needed for sections without ---/+++ lines (mode-only changes,
    binary files); those always have X == Y, which resolves ambiguity
    when the path contains spaces.
    """

    rest = header[len(_DIFF_START) :]
    if rest.startswith(b'"'):
        end = rest.find(b'" ', 1)
        if end < 0:
            return None, None
        return _strip_prefix(rest[: end + 1], b"a/"), _strip_prefix(rest[end + 2 :], b"b/")

    half = (len(rest) - 1) // 2
    old, new = rest[:half], rest[half + 1 :]
    if old.startswith(b"a/") and new.startswith(b"b/") and old[2:] == new[2:]:
        return old[2:], new[2:]

    parts = rest.split(b" ")
    if len(parts) >= 2:
        return _strip_prefix(parts[0], b"a/"), _strip_prefix(parts[-1], b"b/")
    return None, None


def _parse_single_file_diff(lines: Sequence[bytes], start_index: int) -> Tuple[FilePatch, int]:
    """
    Parse a single `diff --git` section starting at start_index.

    Returns a tuple of (FilePatch, next_index).
    """

    header_line = lines[start_index]
    path_old, path_new = _paths_from_header(header_line)
    i = start_index + 1

    change_type = "modify"
    is_binary = False
    old_mode: Optional[str] = None
    new_mode: Optional[str] = None
    binary_forward: Optional[BinaryHunk] = None
    binary_reverse: Optional[BinaryHunk] = None

    while i < len(lines):
        line = lines[i]

        if line.startswith(_DIFF_START) or line.startswith(b"@@"):
            break

        if line.startswith(b"new file mode "):
            change_type = "add"
            new_mode = line[len(b"new file mode ") :].decode("ascii")
            path_old = None
        elif line.startswith(b"deleted file mode "):
            change_type = "delete"
            old_mode = line[len(b"deleted file mode ") :].decode("ascii")
            path_new = None
        elif line.startswith(b"old mode "):
            old_mode = line[len(b"old mode ") :].decode("ascii")
        elif line.startswith(b"new mode "):
            new_mode = line[len(b"new mode ") :].decode("ascii")
        elif line.startswith(b"rename from "):
            path_old = unquote_path(line[len(b"rename from ") :])
            change_type = "rename"
        elif line.startswith(b"rename to "):
            path_new = unquote_path(line[len(b"rename to ") :])
            change_type = "rename"
        elif line.startswith(b"GIT binary patch"):
            is_binary = True
            binary_forward, binary_reverse, i = _parse_binary_patch(lines, i + 1)
            break
        elif line.startswith(b"Binary files "):
            is_binary = True
        elif line.startswith(b"--- "):
            if change_type != "rename":
                path_old = _strip_prefix(line[4:], b"a/")
        elif line.startswith(b"+++ "):
            if change_type != "rename":
                path_new = _strip_prefix(line[4:], b"b/")

        i += 1

    if path_old is None and path_new is None:
        raise DiffParseError(f"cannot determine file path for {header_line!r}")

    hunks: List[Hunk] = []
    while i < len(lines) and lines[i].startswith(b"@@"):
        hunk, i = _parse_hunk(lines, i)
        hunks.append(hunk)

    if i < len(lines) and not lines[i].startswith(_DIFF_START):
        raise DiffParseError(f"unexpected line after hunks: {lines[i]!r}")

    return (
        FilePatch(
            path_old=path_old,
            path_new=path_new,
            change_type=change_type,  # type: ignore[arg-type]
            is_binary=is_binary,
            old_mode=old_mode,
            new_mode=new_mode,
            hunks=hunks,
            binary_forward=binary_forward,
            binary_reverse=binary_reverse,
        ),
        i,
    )


def _parse_binary_patch(
    lines: Sequence[bytes], start_index: int
) -> Tuple[BinaryHunk, Optional[BinaryHunk], int]:
    """
    Parse the forward and optional reverse block after "GIT binary patch".
    """

    forward, i = _parse_binary_block(lines, start_index)
    reverse = None
    if i < len(lines) and _BINARY_HEADER_RE.match(lines[i]):
        reverse, i = _parse_binary_block(lines, i)
    return forward, reverse, i


def _parse_binary_block(lines: Sequence[bytes], start_index: int) -> Tuple[BinaryHunk, int]:
    header = lines[start_index] if start_index < len(lines) else b""
    match = _BINARY_HEADER_RE.match(header)
    if not match:
        raise DiffParseError(f"expected literal or delta block, got {header!r}")

    i = start_index + 1
    data: List[bytes] = []
    while i < len(lines) and lines[i]:
        data.append(lines[i])
        i += 1
    # Blocks are terminated by a blank line.
    while i < len(lines) and not lines[i]:
        i += 1

    try:
        block = decode_block(match.group("kind").decode("ascii"), int(match.group("size")), data)
    except BinaryPatchError as exc:
        raise DiffParseError(f"{exc} ({header!r})") from exc
    return block, i


def _parse_hunk(lines: Sequence[bytes], start_index: int) -> Tuple[Hunk, int]:
    """
    Parse a single hunk starting at `start_index`.
    """

    header = lines[start_index]
    match = _HUNK_HEADER_RE.match(header)
    if not match:
        raise DiffParseError(f"malformed hunk header: {header!r}")

    old_count = int(match.group("old_count") or 1)
    new_count = int(match.group("new_count") or 1)
    hunk = Hunk(
        header=header,
        old_start=int(match.group("old_start")),
        old_count=old_count,
        new_start=int(match.group("new_start")),
        new_count=new_count,
    )

    i = start_index + 1
    old_seen = 0
    new_seen = 0
    while i < len(lines) and (old_seen < old_count or new_seen < new_count):
        line = lines[i]

        if line.startswith(b"\\"):
            if not hunk.lines:
                raise DiffParseError(f"no-newline marker before any line in {header!r}")
            hunk.lines[-1].no_newline = True
            i += 1
            continue

        if not line:
            # Some tools strip the single space from empty context lines.
            line_type, content = " ", b""
        else:
            line_type, content = chr(line[0]), line[1:]
            if line_type not in ("+", "-", " "):
                raise DiffParseError(f"unexpected line in hunk {header!r}: {line!r}")

        if line_type in (" ", "-"):
            old_seen += 1
        if line_type in (" ", "+"):
            new_seen += 1
        hunk.lines.append(HunkLine(line_type=line_type, content=content))  # type: ignore[arg-type]
        i += 1

    if old_seen != old_count or new_seen != new_count:
        raise DiffParseError(
            f"hunk {header!r} is truncated: expected -{old_count}/+{new_count}, "
            f"found -{old_seen}/+{new_seen}"
        )

    if i < len(lines) and lines[i].startswith(b"\\"):
        hunk.lines[-1].no_newline = True
        i += 1

    return hunk, i

"""
Patch file format for gitpatcher.

A patch file is a git format-patch style mail: a short header block,
a blank line, the rest of the commit message (if any) followed by a
blank line, and finally the unified diff:

    From <commit-id> Mon Sep 17 00:00:00 2001
    From: Jane Doe <jane@example.com>
    Date: 2024-03-01T12:00:00+01:00
    Subject: [PATCH] Fix frobnication

    Longer explanation.

    diff --git a/foo.txt b/foo.txt
    ...

The format stays readable by `git am` and `git apply`. Everything here
works on bytes.
"""

from __future__ import annotations

import hashlib
import re
from typing import NamedTuple, Optional, Tuple

from .domain import Commit, PatchRecord
from .errors import ExtractionError, InvalidPatchError

MAX_SLUG_LENGTH = 52
SLUG_HASH_LENGTH = 8

_FROM_LINE_TEMPLATE = b"From %s Mon Sep 17 00:00:00 2001"

_FILE_NAME_RE = re.compile(r"^(?P<sequence>\d{4,})-(?P<slug>.*)\.patch$")
_FROM_LINE_RE = re.compile(rb"^From (?P<commit>[0-9a-f]{4,64}) Mon Sep 17 00:00:00 2001$")
_AUTHOR_LINE_RE = re.compile(rb"^From: (?P<author>.*)$")
_DATE_LINE_RE = re.compile(rb"^Date: (?P<date>.+)$")
_SUBJECT_LINE_RE = re.compile(rb"^Subject: \[PATCH\] ?(?P<subject>.*)$")

_DIFF_START = b"diff --git "


class ParsedPatch(NamedTuple):
    commit_id: str
    author: bytes
    date: str
    subject: bytes
    body: bytes
    diff: bytes


def split_message(commit_id: str, message: bytes) -> Tuple[bytes, bytes]:
    """
    Split a commit message into its subject line and trimmed body.

    Raises ExtractionError for an empty or whitespace-only message.
    """

    if not message:
        raise ExtractionError(f"commit {commit_id[:12]} has an empty commit message")

    stripped = message.strip()
    if not stripped:
        raise ExtractionError(f"commit {commit_id[:12]} has a blank commit message")

    subject, _, body = stripped.partition(b"\n")
    return subject.rstrip(), body.strip()


def slugify(subject: bytes) -> str:
    """
    Turn a subject line into the file-name slug used after the number.

    ASCII letters, digits, '.' and '_' are kept, an empty pair of
    parentheses is dropped, and every other run of bytes collapses into a
    single '-'. Slugs over MAX_SLUG_LENGTH are cut and suffixed with a
    short hash of the full subject so distinct subjects keep distinct
    names.
    """

    out = []
    i = 0
    while i < len(subject):
        byte = subject[i]
        char = chr(byte)
        if byte < 128 and (char.isalnum() or char in "._"):
            out.append(char)
        elif char == "(" and subject[i + 1 : i + 2] == b")":
            i += 1
        elif not out or out[-1] != "-":
            out.append("-")
        i += 1

    slug = "".join(out).rstrip(".-").lstrip("-")
    digest = hashlib.sha1(subject).hexdigest()[:SLUG_HASH_LENGTH]

    if not slug:
        return digest
    if len(slug) > MAX_SLUG_LENGTH:
        keep = MAX_SLUG_LENGTH - SLUG_HASH_LENGTH - 1
        slug = f"{slug[:keep].rstrip('.-')}-{digest}"
    return slug


def patch_file_name(sequence: int, subject: bytes) -> str:
    if sequence < 1:
        raise ValueError(f"patch sequence numbers start at 1, got {sequence}")
    return f"{sequence:04d}-{slugify(subject)}.patch"


def parse_file_name(name: str) -> Optional[int]:
    """
    Return the sequence number encoded in a patch file name, or None.
    """

    match = _FILE_NAME_RE.match(name)
    if not match:
        return None
    return int(match.group("sequence"))


def format_author(name: bytes, email: bytes) -> bytes:
    return name + b" <" + email + b">"


def format_date(commit: Commit) -> str:
    """
    Format the author date as fixed-width ISO-8601 with the author's offset.
    """

    return commit.authored_at().isoformat()


def normalize_diff(raw: bytes) -> bytes:
    """
    Drop the parts of a git diff that change without the change itself
    changing.

    `index <blob>..<blob>` lines name blob ids, which move whenever any
    untouched part of the file changes upstream; the hunks alone describe
    the patch.
    """

    if not raw:
        return b""

    lines = raw.split(b"\n")
    kept = [line for line in lines if not line.startswith(b"index ")]
    out = b"\n".join(kept)
    if not out.endswith(b"\n"):
        out += b"\n"
    return out


def render_patch(
    commit_id: str,
    author: bytes,
    date: str,
    subject: bytes,
    body: bytes,
    diff: bytes,
) -> bytes:
    parts = [
        _FROM_LINE_TEMPLATE % commit_id.encode("ascii"),
        b"\n",
        b"From: " + author + b"\n",
        b"Date: " + date.encode("ascii") + b"\n",
        b"Subject: [PATCH] " + subject + b"\n",
        b"\n",
    ]
    if body:
        parts.append(body + b"\n\n")
    parts.append(diff)
    return b"".join(parts)


def content_hash(content: bytes) -> str:
    """
    Hash a rendered patch, ignoring the commit id line.

    Commit ids change on every rebase even when nothing else does, so
    they must not make an otherwise identical patch look modified.
    """

    first, sep, rest = content.partition(b"\n")
    if sep and _FROM_LINE_RE.match(first):
        content = rest
    return hashlib.sha256(content).hexdigest()


def build_record(
    sequence: int,
    commit_id: str,
    author: bytes,
    date: str,
    subject: bytes,
    body: bytes,
    diff: bytes,
    file_name: Optional[str] = None,
) -> PatchRecord:
    content = render_patch(commit_id, author, date, subject, body, diff)
    return PatchRecord(
        sequence=sequence,
        commit_id=commit_id,
        file_name=file_name or patch_file_name(sequence, subject),
        author=author,
        date=date,
        subject=subject,
        body=body,
        diff=diff,
        content=content,
        content_hash=content_hash(content),
    )


def parse_patch(data: bytes, name: str = "<patch>") -> ParsedPatch:
    """
    Parse the header block and split body from diff.

    Raises InvalidPatchError when the header does not follow the format
    written by render_patch.
    """

    lines = data.split(b"\n", 4)
    if len(lines) < 5:
        raise InvalidPatchError(f"{name}: truncated patch header")

    from_line, author_line, date_line, subject_line, rest = lines

    from_match = _FROM_LINE_RE.match(from_line)
    if not from_match:
        raise InvalidPatchError(f"{name}: expected 'From <commit>' line, got {from_line!r}")
    author_match = _AUTHOR_LINE_RE.match(author_line)
    if not author_match:
        raise InvalidPatchError(f"{name}: expected 'From:' author line, got {author_line!r}")
    date_match = _DATE_LINE_RE.match(date_line)
    if not date_match:
        raise InvalidPatchError(f"{name}: expected 'Date:' line, got {date_line!r}")
    subject_match = _SUBJECT_LINE_RE.match(subject_line)
    if not subject_match:
        raise InvalidPatchError(f"{name}: expected 'Subject:' line, got {subject_line!r}")

    if rest and not rest.startswith(b"\n"):
        raise InvalidPatchError(f"{name}: expected a blank line after the subject")
    rest = rest[1:]

    if rest.startswith(_DIFF_START):
        body, diff = b"", rest
    else:
        idx = rest.find(b"\n\n" + _DIFF_START)
        if idx >= 0:
            body, diff = rest[:idx], rest[idx + 2 :]
        else:
            body, diff = rest.rstrip(b"\n"), b""

    try:
        date = date_match.group("date").decode("ascii")
    except UnicodeDecodeError as exc:
        raise InvalidPatchError(f"{name}: non-ASCII date line") from exc

    return ParsedPatch(
        commit_id=from_match.group("commit").decode("ascii"),
        author=author_match.group("author"),
        date=date,
        subject=subject_match.group("subject"),
        body=body,
        diff=diff,
    )


def split_author(author: bytes) -> Tuple[bytes, bytes]:
    """
    Split "Name <email>" into its parts; email is empty if absent.
    """

    if author.endswith(b">") and b" <" in author:
        name, _, email = author[:-1].rpartition(b" <")
        return name, email
    return author, b""

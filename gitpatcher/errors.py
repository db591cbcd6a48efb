"""
Custom exception types used across gitpatcher.

Each stage of the pipeline raises its own error class so the CLI can
map failures to distinct exit codes instead of a generic failure.
"""

from __future__ import annotations

from typing import Optional


class GitPatcherError(Exception):
    """Base class for all gitpatcher specific errors."""


class GitError(GitPatcherError):
    """Raised when a git command fails."""


class RangeError(GitPatcherError):
    """Raised when the commit range cannot be resolved into a linear path."""


class ExtractionError(GitPatcherError):
    """Raised when a commit cannot be converted into a patch."""


class StoreError(GitPatcherError):
    """Raised when reading, writing or staging patch files fails."""


class InvalidPatchError(StoreError):
    """Raised when a file in the patch directory has a bad name or header."""


class DiffParseError(GitPatcherError):
    """Raised when parsing a unified diff fails."""


class BinaryPatchError(GitPatcherError):
    """Raised when a git binary patch cannot be decoded or applied."""


class ApplyError(GitPatcherError):
    """
    Raised when a stored patch cannot be replayed onto the tree.

    sequence and patch_name identify the patch; path and hunk_index
    (1-based, within that file) identify the first hunk that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        sequence: int,
        patch_name: str,
        path: Optional[str] = None,
        hunk_index: Optional[int] = None,
    ) -> None:
        self.sequence = sequence
        self.patch_name = patch_name
        self.path = path
        self.hunk_index = hunk_index

        location = f"patch {sequence} ({patch_name})"
        if path is not None:
            location += f", file {path}"
        if hunk_index is not None:
            location += f", hunk {hunk_index}"
        super().__init__(f"{location}: {message}")

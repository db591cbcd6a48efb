"""
The on-disk patch directory.

PatchStore enumerates, reads and mutates patch files. It never looks
inside the diffs it stores: file content is written and read back byte
for byte.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .config import Context
from .domain import PatchRecord, PatchSet
from .errors import GitError, InvalidPatchError, StoreError
from .git_adapter import GitRepo
from .patch_format import content_hash, parse_file_name, parse_patch

PATCH_SUFFIX = ".patch"


@dataclass(frozen=True)
class StoredPatch:
    """
    A patch file found in the patch directory.
    """

    sequence: int
    name: str
    path: Path
    record: PatchRecord


class PatchStore:
    """
    Owns a directory of NNNN-<slug>.patch files.

    repo, when given, is the repository that tracks the patch directory;
    it is used to stage changes after the directory is modified.
    """

    def __init__(self, patch_dir: Path, ctx: Context, repo: Optional[GitRepo] = None) -> None:
        self.patch_dir = Path(patch_dir)
        self.repo = repo
        self.log = ctx.log.getChild("store")

    def load(self) -> List[StoredPatch]:
        """
        Return every patch file, ordered by sequence number then name.

        Gaps and duplicate sequence numbers are returned as found; read()
        is the strict variant.
        """

        if not self.patch_dir.exists():
            return []

        try:
            entries = sorted(os.listdir(self.patch_dir))
        except OSError as exc:
            raise StoreError(f"cannot list patch directory {self.patch_dir}: {exc}") from exc

        patches: List[StoredPatch] = []
        for name in entries:
            path = self.patch_dir / name
            if not name.endswith(PATCH_SUFFIX) or not path.is_file():
                self.log.debug("Skipping non-patch entry %s", name)
                continue

            sequence = parse_file_name(name)
            if sequence is None or sequence < 1:
                raise InvalidPatchError(f"invalid name for patch: {name!r}")

            patches.append(StoredPatch(sequence, name, path, read_patch_file(path, sequence)))

        patches.sort(key=lambda patch: (patch.sequence, patch.name))
        return patches

    def read(self) -> PatchSet:
        """
        Return the stored patches as a PatchSet.

        Raises StoreError if the numbering is not exactly 1..n.
        """

        records = tuple(patch.record for patch in self.load())
        try:
            return PatchSet(records=records)
        except StoreError as exc:
            raise StoreError(f"{self.patch_dir}: {exc}") from exc

    def create(self, name: str, data: bytes) -> None:
        path = self._path(name)
        if path.exists():
            raise StoreError(f"patch {name} already exists")
        self._write(path, data)

    def overwrite(self, name: str, data: bytes) -> None:
        self._write(self._path(name), data)

    def delete(self, name: str) -> None:
        try:
            self._path(name).unlink()
        except OSError as exc:
            raise StoreError(f"cannot delete patch {name}: {exc}") from exc

    def stage(self, names: Iterable[str]) -> List[str]:
        """
        Stage additions, modifications and removals of the named files.

        Returns the staged names; nothing is staged without a repo.
        """

        names = list(names)
        if self.repo is None or not names:
            return []

        paths = [self._path(name).absolute() for name in names]
        try:
            self.repo.add(p for p in paths if p.exists())
            self.repo.remove_cached(p for p in paths if not p.exists())
        except GitError as exc:
            raise StoreError(f"failed to stage patch changes: {exc}") from exc
        return names

    def _path(self, name: str) -> Path:
        if not name or "/" in name or os.sep in name or name in (".", ".."):
            raise StoreError(f"invalid patch file name: {name!r}")
        return self.patch_dir / name

    def _write(self, path: Path, data: bytes) -> None:
        tmp = path.with_name(f".{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as exc:
            raise StoreError(f"cannot write patch {path.name}: {exc}") from exc


def read_patch_file(path: Path, sequence: Optional[int] = None) -> PatchRecord:
    """
    Read and parse a single patch file.

    sequence defaults to the number in the file name, or 1 for files not
    named NNNN-<slug>.patch.
    """

    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise StoreError(f"cannot read patch {path.name}: {exc}") from exc

    if sequence is None:
        sequence = parse_file_name(path.name) or 1

    parsed = parse_patch(data, path.name)
    return PatchRecord(
        sequence=sequence,
        commit_id=parsed.commit_id,
        file_name=path.name,
        author=parsed.author,
        date=parsed.date,
        subject=parsed.subject,
        body=parsed.body,
        diff=parsed.diff,
        content=data,
        content_hash=content_hash(data),
    )

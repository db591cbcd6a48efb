"""
Git integration for gitpatcher.

All interaction with the git CLI goes through a GitRepo handle. The
handle is created once by the caller and passed explicitly to every
component that needs history or index access, so there is no global
"current repository".

Output is handled as bytes throughout: commit messages, author names and
paths are not guaranteed to be valid UTF-8.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from .domain import Commit
from .errors import GitError

LOG = logging.getLogger(__name__)

_AUTHOR_RE = re.compile(
    rb"^(?P<name>.*) <(?P<email>[^>]*)> (?P<timestamp>-?\d+) (?P<offset>[+-]\d{4})$"
)

# Markers git leaves in the git dir while a multi-step operation is paused.
_IN_PROGRESS_MARKERS = (
    ("rebase-merge", "rebase"),
    ("rebase-apply/applying", "am"),
    ("rebase-apply", "rebase"),
    ("MERGE_HEAD", "merge"),
    ("CHERRY_PICK_HEAD", "cherry-pick"),
    ("REVERT_HEAD", "revert"),
)


def _run_git(
    args: List[str],
    cwd: Optional[Path] = None,
    input_bytes: Optional[bytes] = None,
    env: Optional[Mapping[str, str]] = None,
    check: bool = True,
) -> subprocess.CompletedProcess[bytes]:
    """
    Run a git command and return the completed process.

    With check=True a non-zero exit status raises GitError carrying the
    command line and git's stderr.
    """

    cmd = ["git", *args]
    LOG.debug("Running git command: %s", " ".join(cmd))

    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update(env)

    try:
        completed = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            check=False,
            capture_output=True,
            input=input_bytes,
            env=full_env,
        )
    except OSError as exc:
        raise GitError(f"failed to execute git: {exc}") from exc

    if check and completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", "replace").strip()
        LOG.debug("git stderr: %s", stderr)
        message = f"git command failed: {' '.join(cmd)}"
        if stderr:
            message += f": {stderr}"
        raise GitError(message)

    return completed


def parse_commit_object(commit_id: str, raw: bytes) -> Commit:
    """
    Parse the output of ``git cat-file commit`` into a Commit.

    Header continuation lines (signatures, mergetags) are skipped; the
    message is everything after the first blank line, byte for byte.
    """

    header, sep, message = raw.partition(b"\n\n")
    if not sep:
        message = b""

    parents: List[str] = []
    author: Optional[bytes] = None
    for line in header.split(b"\n"):
        if line.startswith(b" "):
            continue
        key, _, value = line.partition(b" ")
        if key == b"parent":
            parents.append(value.decode("ascii"))
        elif key == b"author":
            author = value

    if author is None:
        raise GitError(f"commit {commit_id} has no author header")

    match = _AUTHOR_RE.match(author)
    if not match:
        raise GitError(f"commit {commit_id} has a malformed author header: {author!r}")

    return Commit(
        id=commit_id,
        author_name=match.group("name"),
        author_email=match.group("email"),
        timestamp=int(match.group("timestamp")),
        utc_offset=match.group("offset").decode("ascii"),
        message=message,
        parents=tuple(parents),
    )


class GitRepo:
    """
    Handle on a single git working tree.

    The handle is cheap to create; it only remembers the worktree root.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"GitRepo({str(self.path)!r})"

    @classmethod
    def discover(cls, path: Path) -> "GitRepo":
        """
        Return the repository whose worktree contains path.

        path does not need to exist yet; the nearest existing ancestor is
        used for the lookup.
        """

        start = Path(path).absolute()
        while not start.exists() and start != start.parent:
            start = start.parent
        if start.is_file():
            start = start.parent

        top = _run_git(["rev-parse", "--show-toplevel"], cwd=start).stdout
        return cls(Path(os.fsdecode(top.rstrip(b"\n"))))

    def run(
        self,
        args: List[str],
        input_bytes: Optional[bytes] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> bytes:
        return _run_git(args, cwd=self.path, input_bytes=input_bytes, env=env).stdout

    def resolve_commit(self, ref: str) -> Optional[str]:
        """
        Return the full commit id for ref, or None if it does not resolve.
        """

        completed = _run_git(
            ["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"],
            cwd=self.path,
            check=False,
        )
        if completed.returncode != 0:
            return None
        return completed.stdout.strip().decode("ascii")

    def head(self) -> str:
        head = self.resolve_commit("HEAD")
        if head is None:
            raise GitError(f"repository {self.path} has no HEAD commit")
        return head

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        completed = _run_git(
            ["merge-base", "--is-ancestor", ancestor, descendant],
            cwd=self.path,
            check=False,
        )
        if completed.returncode == 0:
            return True
        if completed.returncode == 1:
            return False
        raise GitError(f"git merge-base failed for {ancestor} and {descendant}")

    def rev_list(self, base: str, head: str) -> List[str]:
        """
        Return the commits reachable from head but not base, oldest first.
        """

        out = self.run(["rev-list", "--reverse", "--topo-order", f"{base}..{head}"])
        return [line.decode("ascii") for line in out.split()]

    def read_commit(self, commit_id: str) -> Commit:
        raw = self.run(["cat-file", "commit", commit_id])
        return parse_commit_object(commit_id, raw)

    def diff_trees(self, old: str, new: str) -> bytes:
        """
        Return the unified diff between two commits' trees.

        diff-tree is plumbing, so user-level diff configuration (prefixes,
        algorithms, external drivers) cannot change its output.
        """

        return self.run(
            [
                "diff-tree",
                "-r",
                "-p",
                "--binary",
                "--no-renames",
                "--no-color",
                "--no-ext-diff",
                "--no-textconv",
                old,
                new,
            ]
        )

    def git_dir(self) -> Path:
        out = self.run(["rev-parse", "--absolute-git-dir"])
        return Path(os.fsdecode(out.rstrip(b"\n")))

    def operation_in_progress(self) -> Optional[str]:
        """
        Return the name of a paused multi-step operation, if any.

        "rebase" covers both rebase backends; a paused `git am` also uses
        rebase-apply but leaves an "applying" marker in it.
        """

        git_dir = self.git_dir()
        for marker, name in _IN_PROGRESS_MARKERS:
            if (git_dir / marker).exists():
                return name
        return None

    def add(self, paths: Iterable[Path]) -> None:
        """
        Stage additions, modifications and removals for the given paths.
        """

        args = [os.fsdecode(p) for p in paths]
        if not args:
            return
        self.run(["add", "-A", "--", *args])

    def remove_cached(self, paths: Iterable[Path]) -> None:
        """
        Stage the removal of already deleted paths; untracked ones are ignored.
        """

        args = [os.fsdecode(p) for p in paths]
        if not args:
            return
        self.run(["rm", "--cached", "--quiet", "--ignore-unmatch", "--", *args])

    def reset_hard(self, ref: str) -> None:
        """
        Reset the worktree to ref and remove untracked files.
        """

        self.run(["reset", "--hard", "--quiet", ref])
        self.run(["clean", "-fdq"])

    def commit_all(
        self,
        message: bytes,
        author_name: bytes,
        author_email: bytes,
        date: str,
    ) -> str:
        """
        Stage the whole worktree and commit it with the given author.

        The message is fed through stdin so it can carry arbitrary bytes.
        Returns the new commit id.
        """

        self.run(["add", "-A", "."])
        env = {
            "GIT_AUTHOR_NAME": os.fsdecode(author_name),
            "GIT_AUTHOR_EMAIL": os.fsdecode(author_email),
            "GIT_AUTHOR_DATE": date,
        }
        self.run(
            ["commit", "--quiet", "--allow-empty", "--no-verify", "--cleanup=verbatim", "-F", "-"],
            input_bytes=message,
            env=env,
        )
        return self.head()

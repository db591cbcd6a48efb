import logging
import os
import subprocess
from pathlib import Path

import pytest

from gitpatcher.config import Config, Context

_GIT_ENV = {
    "GIT_CONFIG_NOSYSTEM": "1",
    "GIT_AUTHOR_NAME": "Test Author",
    "GIT_AUTHOR_EMAIL": "author@example.com",
    "GIT_COMMITTER_NAME": "Test Committer",
    "GIT_COMMITTER_EMAIL": "committer@example.com",
}


def run_git(args, cwd: Path, input_bytes=None, env=None) -> subprocess.CompletedProcess:
    full_env = os.environ.copy()
    full_env.update(_GIT_ENV)
    if env:
        full_env.update(env)
    return subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        input=input_bytes,
        capture_output=True,
        check=True,
        env=full_env,
    )


class RepoBuilder:
    """
    Small helper for building throwaway repositories in tests.

    Commit dates advance by one minute per commit so patch headers are
    deterministic.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._clock = 1_700_000_000
        path.mkdir(parents=True, exist_ok=True)
        run_git(["init", "-q"], cwd=path)
        run_git(["config", "user.name", "Test Author"], cwd=path)
        run_git(["config", "user.email", "author@example.com"], cwd=path)
        run_git(["config", "commit.gpgsign", "false"], cwd=path)
        run_git(["config", "core.autocrlf", "false"], cwd=path)

    def git(self, *args, input_bytes=None, env=None) -> bytes:
        return run_git(list(args), cwd=self.path, input_bytes=input_bytes, env=env).stdout

    def write(self, name: str, content) -> None:
        target = self.path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode("utf-8")
        target.write_bytes(content)

    def remove(self, name: str) -> None:
        (self.path / name).unlink()

    def commit(self, message) -> str:
        if isinstance(message, str):
            message = message.encode("utf-8")
        if not message.endswith(b"\n"):
            message += b"\n"
        self._clock += 60
        date = f"@{self._clock} +0100"
        self.git("add", "-A", ".")
        self.git(
            "commit",
            "-q",
            "--allow-empty",
            "--allow-empty-message",
            "--cleanup=verbatim",
            "-F",
            "-",
            input_bytes=message,
            env={"GIT_AUTHOR_DATE": date, "GIT_COMMITTER_DATE": date},
        )
        return self.head()

    def head(self) -> str:
        return self.git("rev-parse", "HEAD").decode("ascii").strip()

    def tag(self, name: str, ref: str = "HEAD") -> None:
        self.git("tag", "-f", name, ref)


def snapshot(root: Path) -> dict:
    """Map every file under root (excluding .git) to its bytes."""

    files = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root)
        if rel.parts and rel.parts[0] == ".git":
            continue
        if path.is_file():
            files[rel.as_posix()] = path.read_bytes()
    return files


@pytest.fixture
def ctx() -> Context:
    return Context(config=Config(), log=logging.getLogger("gitpatcher.test"))


@pytest.fixture
def repo_builder(tmp_path):
    def factory(name: str = "repo") -> RepoBuilder:
        return RepoBuilder(tmp_path / name)

    return factory

from pathlib import Path

import pytest

from gitpatcher.config import Config, Context
from gitpatcher.errors import GitPatcherError


def test_defaults():
    config = Config()
    assert config.upstream_ref == "upstream/main"
    assert config.patch_dir == Path("patches")
    assert config.stage and not config.dry_run
    assert config.max_offset is None
    assert config.patch_file is None


def test_from_options_accepts_hyphenated_keys():
    config = Config.from_options(
        {"submodule-path": "vendor/lib", "upstream_ref": "origin/main", "dry-run": True}
    )
    assert config.submodule_path == Path("vendor/lib")
    assert config.upstream_ref == "origin/main"
    assert config.dry_run is True


def test_from_options_converts_patch_file():
    assert Config.from_options({"patch-file": "fix.patch"}).patch_file == Path("fix.patch")
    assert Config.from_options({"patch-file": None}).patch_file is None


def test_from_options_rejects_unknown_keys():
    with pytest.raises(GitPatcherError, match="patch-directory"):
        Config.from_options({"patch-directory": "p"})


def test_context_child_logger():
    ctx = Context(config=Config())
    child = ctx.child("store")
    assert child.config is ctx.config
    assert child.log.name == "gitpatcher.store"

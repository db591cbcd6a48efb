"""
Configuration model for gitpatcher.

The CLI constructs a Config instance, wraps it in a Context together with
a logger, and passes that context down into every component so behavior
can be adjusted without relying on global state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from .errors import GitPatcherError


@dataclass
class Config:
    """
    Top-level configuration for a gitpatcher run.

    submodule_path is the vendored git tree, upstream_ref the branch or
    tag marking the upstream base, and patch_dir the directory holding
    the patch files. patch_file, when set, makes apply replay that single
    file instead of the whole directory.
    """

    submodule_path: Path = Path(".")
    upstream_ref: str = "upstream/main"
    patch_dir: Path = Path("patches")
    dry_run: bool = False
    stage: bool = True
    commit: bool = False
    reset: bool = False
    patch_file: Optional[Path] = None
    max_offset: Optional[int] = None
    verbosity: int = 0

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "Config":
        """
        Build a Config from option names as users spell them.

        Keys may use hyphens (``submodule-path``) or underscores. Unknown
        keys are rejected so typos do not silently fall back to defaults.
        """

        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in options.items():
            name = key.replace("-", "_")
            if name not in known:
                raise GitPatcherError(f"unknown configuration option: {key}")
            values[name] = value

        for name in ("submodule_path", "patch_dir", "patch_file"):
            if values.get(name) is not None and not isinstance(values[name], Path):
                values[name] = Path(values[name])

        return cls(**values)


@dataclass
class Context:
    """
    Explicit per-run state handed to each component.

    Holding the logger here keeps components free of process-wide logging
    assumptions; tests can pass their own logger or use the default.
    """

    config: Config
    log: logging.Logger = field(default_factory=lambda: logging.getLogger("gitpatcher"))

    def child(self, name: str) -> "Context":
        """Return a context whose logger is a child of this one."""

        return Context(config=self.config, log=self.log.getChild(name))

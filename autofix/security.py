"""Refuse autofixes that touch CI configuration."""
from __future__ import annotations

from collections.abc import Iterable
import re

from ._constants import CI_MANIFESTS, CI_META_DIR
from .error_model import SecurityError
from .changes import ChangeEntry

_SEPARATORS = re.compile(r"[\\/]")


def touches_ci_config(path: str) -> str | None:
    """Return why `path` counts as CI configuration, else None."""
    parts = [p for p in _SEPARATORS.split(path) if p]
    if not parts: return None
    if parts[-1] in CI_MANIFESTS:
        return "file"
    if CI_META_DIR in parts: return "path"
    return None


def check(changes: Iterable[ChangeEntry]) -> None:
    """
    Raise SecurityError if any change touches CI configuration.

    Both sides of a rename are checked.
    """
    for entry in changes:
        for path in entry.paths():
            kind = touches_ci_config(path)
            if kind is None: continue
            raise SecurityError(
                f"changed files include CI config {kind} {path!r}; "
                "refusing to auto-commit")

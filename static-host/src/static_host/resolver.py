"""Maps request paths onto files below the site root.

The request path is attacker controlled. It is joined onto the site root and
canonicalized against the filesystem (resolving "..", "." and symlinks), and
only then checked for containment. Every way of failing collapses into Denied,
so the client can't tell a traversal attempt from a missing file.
"""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

INDEX_FILE = "index.html"


@dataclass(frozen=True, slots=True)
class Allowed:
    """The request may be served from path."""

    """Canonical path of a regular file below the site root"""
    path: Path


@dataclass(frozen=True, slots=True)
class Denied:
    """The request gets the not-found page."""

    not_found_file: Path

    """Why the request was denied. Only for logging, never sent to the client"""
    reason: str = field(default="", compare=False)


type ResolvedTarget = Allowed | Denied


def resolve(
    site_root: Path, not_found_file: Path, request_path: str
) -> ResolvedTarget:
    """Resolves a percent-decoded request path to a file below site_root.

    Args:
        site_root: canonical site directory
        not_found_file: the page to serve on denial
        request_path: the path part of the request target, may be empty

    Returns:
        Allowed with the canonical file path, or Denied. A directory resolves to
        its index.html, which must itself be a contained regular file.
    """
    canonical = _canonicalize(site_root / request_path.lstrip("/"))
    if canonical is None:
        return Denied(not_found_file, "does not exist or can't be canonicalized")
    if not canonical.is_relative_to(site_root):
        return Denied(not_found_file, "escapes the site root")

    mode = _mode(canonical)
    if mode is not None and stat.S_ISDIR(mode):
        canonical = _canonicalize(canonical / INDEX_FILE)
        if canonical is None:
            return Denied(not_found_file, "directory without index")
        if not canonical.is_relative_to(site_root):
            return Denied(not_found_file, "directory index escapes the site root")
        mode = _mode(canonical)

    if mode is None or not stat.S_ISREG(mode):
        return Denied(not_found_file, "not a regular file")

    return Allowed(canonical)


def _canonicalize(path: Path) -> Path | None:
    try:
        return path.resolve(strict=True)
    # RuntimeError for symlink loops on older interpreters, ValueError for NUL.
    except (OSError, RuntimeError, ValueError):
        return None


def _mode(path: Path) -> int | None:
    try:
        return os.stat(path).st_mode
    except (OSError, ValueError):
        return None

"""Path helpers: every tool path is resolved inside the project root."""

from __future__ import annotations

import os
from pathlib import Path

# Directories never listed, globbed or grepped
EXCLUDED_DIRS = frozenset(
    {
        "node_modules",
        ".git",
        ".next",
        "dist",
        "build",
        ".cache",
        "__pycache__",
        ".venv",
    }
)


class PathEscapeError(ValueError):
    """A user-supplied path resolved outside the project root."""


def resolve_path(root: Path, user_path: str) -> Path:
    """Resolve ``user_path`` against ``root``, rejecting path traversal.

    Relative paths are relative to the project root. Absolute paths are
    accepted only when they already point inside it.
    """
    base = root.resolve()
    candidate = (base / user_path).resolve() if user_path else base
    if candidate != base and base not in candidate.parents:
        raise PathEscapeError(f"Path traversal detected: {user_path}")
    return candidate


def relative_path(root: Path, path: Path) -> str:
    """Project-relative POSIX path for display and side-effect summaries.

    Entries are not resolved, so a link inside the project keeps its own
    name even when its target lives elsewhere.
    """
    base = root.resolve()
    for parent in (root, base):
        try:
            rel = path.relative_to(parent).as_posix()
            break
        except ValueError:
            continue
    else:
        rel = path.resolve().relative_to(base).as_posix()
    return "" if rel == "." else rel


def is_inside(root: Path, path: Path) -> bool:
    """True when ``path`` resolves to ``root`` or somewhere below it."""
    base = root.resolve()
    resolved = path.resolve()
    return resolved == base or base in resolved.parents


def walk_files(root: Path, start: Path | None = None) -> list[str]:
    """All files under ``start`` (default: root), sorted, project-relative.

    Links whose target lies outside the project are skipped.
    """
    base = root.resolve()
    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(start or base):
        dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.is_symlink() and not is_inside(base, path):
                continue
            files.append(relative_path(base, path))
    return files

"""Execution sandbox: where a project's files live and commands run.

Provisioning is someone else's job. The orchestrator only needs
``ensure_ready`` to hand back a usable project root.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_PROJECT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

# marker file -> (project type, package manager)
_PROJECT_MARKERS: list[tuple[str, str, str | None]] = [
    ("pnpm-lock.yaml", "node", "pnpm"),
    ("yarn.lock", "node", "yarn"),
    ("package.json", "node", "npm"),
    ("pyproject.toml", "python", "pip"),
    ("requirements.txt", "python", "pip"),
    ("pubspec.yaml", "flutter", "pub"),
    ("go.mod", "go", None),
    ("Cargo.toml", "rust", "cargo"),
]


@dataclass
class SandboxInfo:
    project_id: str
    root: Path
    project_type: str | None = None
    package_manager: str | None = None


@runtime_checkable
class Sandbox(Protocol):
    async def ensure_ready(self, project_id: str) -> SandboxInfo:
        """Return the ready sandbox for ``project_id`` or raise."""
        ...


class LocalSandbox:
    """Projects are plain directories under ``projects_root``."""

    def __init__(self, projects_root: str | Path) -> None:
        self._root = Path(projects_root).expanduser()

    async def ensure_ready(self, project_id: str) -> SandboxInfo:
        if not _PROJECT_ID_RE.match(project_id):
            raise ValueError(f"Invalid project id: {project_id!r}")

        root = self._root / project_id
        root.mkdir(parents=True, exist_ok=True)
        project_type, package_manager = detect_project(root)
        logger.info(
            "Sandbox ready for %s at %s (type=%s)", project_id, root, project_type
        )
        return SandboxInfo(
            project_id=project_id,
            root=root,
            project_type=project_type,
            package_manager=package_manager,
        )


def detect_project(root: Path) -> tuple[str | None, str | None]:
    for marker, project_type, package_manager in _PROJECT_MARKERS:
        if (root / marker).exists():
            return project_type, package_manager
    return None, None

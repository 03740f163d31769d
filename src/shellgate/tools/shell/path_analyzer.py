"""Path analysis for filesystem-mutating commands.

Resolves the path arguments of commands that create, remove, move or
change the permissions of files, and reports the directories that fall
outside the project root. Directories inside an operator-designated
workspace are trusted and never reported.
"""

import os
from pathlib import Path
from typing import Iterable

from shellgate.tools.shell.models import Invocation, PathCheck

# Commands whose path arguments are checked against the project root
FILESYSTEM_COMMANDS = frozenset({"cd", "rm", "cp", "mv", "mkdir", "touch", "chmod", "chown"})


class PathAnalyzer:
    """Finds external directories touched by filesystem commands."""

    def __init__(
        self,
        project_root: Path,
        workspace_dirs: Iterable[Path | str] = (),
    ):
        """Initialize path analyzer.

        Args:
            project_root: Directory commands run in.
            workspace_dirs: Additional trusted directories.
        """
        self.project_root = Path(project_root).resolve()
        self._workspace_dirs = [
            Path(os.path.expandvars(str(p))).expanduser().resolve() for p in workspace_dirs
        ]

    def path_arguments(self, invocation: Invocation) -> list[str]:
        """Arguments of a filesystem command that name paths."""
        if invocation.head not in FILESYSTEM_COMMANDS:
            return []
        paths = []
        for arg in invocation.args:
            if arg.startswith("-"):
                continue
            # chmod +x style modes
            if invocation.head == "chmod" and arg.startswith("+"):
                continue
            paths.append(arg)
        return paths

    def external_directories(self, invocation: Invocation) -> list[str]:
        """Directories outside the project touched by an invocation.

        For each path argument that resolves outside the project root and
        outside every workspace directory, its parent directory is
        reported. Duplicates are collapsed.
        """
        directories: list[str] = []
        for arg in self.path_arguments(invocation):
            check = self.check_path(arg)
            if not check.is_external:
                continue
            parent = str(check.resolved.parent)
            if parent not in directories:
                directories.append(parent)
        return directories

    def check_path(self, path_str: str) -> PathCheck:
        """Resolve a path argument against the project root.

        Environment variables and ``~`` are expanded, relative paths are
        taken from the project root, and symlinks are resolved.
        """
        try:
            expanded = os.path.expanduser(os.path.expandvars(path_str))
            if not os.path.isabs(expanded):
                expanded = str(self.project_root / expanded)
            resolved = Path(expanded).resolve()
        except (ValueError, OSError, RuntimeError):
            return PathCheck(original=path_str)

        return PathCheck(
            original=path_str,
            resolved=resolved,
            in_project=self._is_in_directory(resolved, self.project_root),
            in_workspace=any(
                self._is_in_directory(resolved, workspace)
                for workspace in self._workspace_dirs
            ),
        )

    @staticmethod
    def _is_in_directory(path: Path, directory: Path) -> bool:
        """Check if a path is inside (or equal to) a directory."""
        try:
            path.relative_to(directory)
            return True
        except ValueError:
            return False

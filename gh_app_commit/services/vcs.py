"""Local version-control collaborator with protocol-based swappable implementations.

Production code uses ``GitCLIChangeProvider`` which shells out to ``git`` in
the working tree to stage changes and list the staged paths.  Tests use
``InMemoryChangeProvider`` which returns a configured path list and records
which staging mode was requested.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol

import structlog

from gh_app_commit.errors import LocalIOError

logger = structlog.get_logger()


class ChangeProvider(Protocol):
    """Protocol for staging local changes and listing changed paths."""

    async def stage_changed(self) -> None:
        """Stage modifications and deletions of tracked files."""
        ...

    async def stage_changed_and_new(self) -> None:
        """Stage modifications, deletions and untracked files."""
        ...

    async def diff(self, staged: bool) -> list[str]:
        """Return changed paths, relative to the working tree root."""
        ...


async def collect_changed_paths(provider: ChangeProvider, *, include_new_files: bool) -> list[str]:
    """Stage the working tree and return the staged paths.

    Staging happens first so the diff lists exactly what will be committed.
    """
    if include_new_files:
        await provider.stage_changed_and_new()
    else:
        await provider.stage_changed()
    return await provider.diff(staged=True)


class GitCLIChangeProvider:
    """Production implementation backed by the ``git`` executable."""

    def __init__(self, workdir: str | Path = ".", git: str = "git") -> None:
        self._workdir = Path(workdir)
        self._git = git

    async def _run(self, *args: str) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._git,
                *args,
                cwd=self._workdir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise LocalIOError(f"failed to run git {' '.join(args)}: {exc}") from exc
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            logger.error(
                "git_command_failed",
                args=list(args),
                workdir=str(self._workdir),
                returncode=proc.returncode,
                stderr=stderr.decode(errors="replace").strip(),
            )
            raise LocalIOError(
                f"git {' '.join(args)} exited with {proc.returncode}: "
                f"{stderr.decode(errors='replace').strip()}"
            )
        return stdout.decode()

    async def stage_changed(self) -> None:
        await self._run("add", "-u")

    async def stage_changed_and_new(self) -> None:
        await self._run("add", "-A")

    async def diff(self, staged: bool) -> list[str]:
        # Unquoted, NUL separated names so non-ASCII paths match the files on disk.
        args = ["-c", "core.quotePath=false", "diff", "--name-only", "-z"]
        if staged:
            args.append("--cached")
        output = await self._run(*args)
        return [path for path in output.split("\0") if path]


class InMemoryChangeProvider:
    """Test double that returns canned paths and records staging calls."""

    def __init__(self, paths: list[str] | None = None) -> None:
        self.paths: list[str] = list(paths or [])
        self.calls: list[str] = []

    async def stage_changed(self) -> None:
        self.calls.append("stage_changed")

    async def stage_changed_and_new(self) -> None:
        self.calls.append("stage_changed_and_new")

    async def diff(self, staged: bool) -> list[str]:
        self.calls.append(f"diff(staged={staged})")
        return list(self.paths)

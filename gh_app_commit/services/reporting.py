"""CI notification sinks: GitHub Actions step summary and step outputs.

``GitHubActionsReporter`` writes to the files the runner names in
``GITHUB_STEP_SUMMARY`` and ``GITHUB_OUTPUT``, and does nothing outside of
GitHub Actions.  ``InMemoryReporter`` records what would have been written.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from gh_app_commit.config import Settings
from gh_app_commit.errors import LocalIOError


class Reporter(Protocol):
    """Protocol for publishing run results to the CI system."""

    def append_summary(self, text: str) -> None:
        ...

    def set_output(self, name: str, value: str) -> None:
        ...


class GitHubActionsReporter:
    def __init__(self, *, enabled: bool, summary_path: str = "", output_path: str = "") -> None:
        self._enabled = enabled
        self._summary_path = summary_path
        self._output_path = output_path

    @classmethod
    def from_settings(cls, settings: Settings) -> GitHubActionsReporter:
        return cls(
            enabled=settings.github_actions,
            summary_path=settings.github_step_summary,
            output_path=settings.github_output,
        )

    def _append_line(self, path: str, line: str) -> None:
        if not self._enabled or not path:
            return
        try:
            with Path(path).open("a", encoding="utf-8") as fh:
                fh.write(f"{line}\n")
        except OSError as exc:
            raise LocalIOError(f"failed writing to {path}: {exc}") from exc

    def append_summary(self, text: str) -> None:
        self._append_line(self._summary_path, text.rstrip("\n"))

    def set_output(self, name: str, value: str) -> None:
        self._append_line(self._output_path, f"{name}={value}")


class InMemoryReporter:
    """Test double that records summaries and outputs."""

    def __init__(self) -> None:
        self.summaries: list[str] = []
        self.outputs: dict[str, str] = {}

    def append_summary(self, text: str) -> None:
        self.summaries.append(text)

    def set_output(self, name: str, value: str) -> None:
        self.outputs[name] = value

"""Domain models for commit and tag requests."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

_REPOSITORY_PATTERN = re.compile(r"^([a-zA-Z0-9_-]+)/([a-zA-Z0-9_-]+)$")
_GIT_USER_PATTERN = re.compile(r"^(.+) <(.+)>$")


def normalize_branch(branch: str) -> str:
    """Strip a ``refs/heads/`` or ``heads/`` prefix, leaving the bare branch name."""
    return branch.removeprefix("refs/").removeprefix("heads/")


class RepositoryRef(BaseModel):
    """Immutable owner/name identifier of the target repository."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str

    @classmethod
    def parse(cls, value: str) -> RepositoryRef:
        """Parse ``owner/repo``.

        Raises:
            ValueError: If *value* is not in ``owner/repo`` form.
        """
        match = _REPOSITORY_PATTERN.match(value)
        if match is None:
            raise ValueError(
                f"invalid repository format '{value}', expected format is 'owner/repo'"
            )
        return cls(owner=match.group(1), name=match.group(2))

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class ScopedToken(BaseModel):
    """Installation access token bound to one repository."""

    model_config = ConfigDict(frozen=True)

    repo: RepositoryRef
    token: str = Field(repr=False)


class GitUser(BaseModel):
    """A commit co-author."""

    name: str
    email: str

    @classmethod
    def parse(cls, value: str) -> GitUser:
        """Parse ``Name <email@example.com>``; surrounding whitespace is ignored."""
        match = _GIT_USER_PATTERN.match(value.strip())
        if match is None:
            raise ValueError(
                f"invalid coauthor format '{value}', expected format is 'Name <email@example.com>'"
            )
        return cls(name=match.group(1), email=match.group(2))

    @classmethod
    def parse_list(cls, value: str) -> list[GitUser]:
        """Parse a comma-separated list of co-authors. Empty input gives an empty list."""
        if not value.strip():
            return []
        return [cls.parse(item) for item in value.split(",")]


class GitHubOrg(BaseModel):
    """Organization a commit is made on behalf of."""

    name: str
    slug: str
    email: str


class CommitOptions(BaseModel):
    include_new_files: bool = True
    force: bool = False
    # Emit explicit ``sha: null`` tree entries for deleted paths.
    remove_deleted_files: bool = False


class CommitRequest(BaseModel):
    """What to commit and where to push it."""

    branch: str
    head_branch: str | None = None
    coauthors: list[GitUser] = Field(default_factory=list)
    on_behalf_of: GitHubOrg | None = None
    message: str
    options: CommitOptions = Field(default_factory=CommitOptions)

    @field_validator("branch")
    @classmethod
    def _branch_not_empty(cls, value: str) -> str:
        value = normalize_branch(value)
        if not value.strip():
            raise ValueError("branch must not be empty")
        return value

    @field_validator("head_branch")
    @classmethod
    def _normalize_head_branch(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_branch(value) or None

    @property
    def effective_head_branch(self) -> str:
        """Branch whose head is the base of the new commit (defaults to ``branch``)."""
        return self.head_branch or self.branch


class FileChange(BaseModel):
    """Outcome of uploading one changed path."""

    path: str
    deleted: bool = False
    blob_sha: str | None = None


class TagRequest(BaseModel):
    tag_name: str
    message: str
    commit_sha: str

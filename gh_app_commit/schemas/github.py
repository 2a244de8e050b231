"""Pydantic models for GitHub Git Data API payloads.

Reference: https://docs.github.com/en/rest/git
"""

from pydantic import BaseModel, ConfigDict, Field


class _Response(BaseModel):
    """Base for response models: GitHub returns far more fields than we read."""

    model_config = ConfigDict(extra="ignore")


class RefObject(_Response):
    """Object a reference points at."""

    sha: str
    type: str = ""
    url: str = ""


class RefResponse(_Response):
    """A git reference as returned by ``/git/refs`` and ``/git/ref``."""

    ref: str = ""
    node_id: str = ""
    url: str = ""
    object: RefObject


class CreateRefRequest(BaseModel):
    """Body for ``POST /repos/{owner}/{repo}/git/refs``."""

    ref: str
    sha: str


class UpdateRefRequest(BaseModel):
    """Body for ``PATCH /repos/{owner}/{repo}/git/refs/{ref}``."""

    sha: str
    force: bool = False


class TreeItem(BaseModel):
    """A single entry of a tree-creation request.

    ``sha=None`` is serialized as ``null``, which GitHub treats as a deletion
    of *path* relative to ``base_tree``.
    """

    path: str
    mode: str = "100644"
    type: str = "blob"
    sha: str | None


class TreeRequest(BaseModel):
    """Body for ``POST /repos/{owner}/{repo}/git/trees``."""

    base_tree: str
    tree: list[TreeItem] = Field(default_factory=list)


class TreeResponse(_Response):
    sha: str
    url: str = ""
    truncated: bool = False


class CommitRequest(BaseModel):
    """Body for ``POST /repos/{owner}/{repo}/git/commits``."""

    message: str
    tree: str
    parents: list[str]


class CommitParent(_Response):
    sha: str
    url: str = ""
    html_url: str = ""


class CommitResponse(_Response):
    sha: str
    node_id: str = ""
    url: str = ""
    html_url: str = ""
    message: str = ""
    parents: list[CommitParent] = Field(default_factory=list)


class BlobRequest(BaseModel):
    """Body for ``POST /repos/{owner}/{repo}/git/blobs``."""

    content: str
    encoding: str = "base64"


class BlobResponse(_Response):
    sha: str
    url: str = ""


class TagRequest(BaseModel):
    """Body for ``POST /repos/{owner}/{repo}/git/tags``."""

    tag: str
    message: str
    object: str
    type: str = "commit"


class TagResponse(_Response):
    sha: str
    tag: str = ""
    url: str = ""
    message: str = ""
    object: RefObject | None = None


class InstallationAccount(_Response):
    login: str = ""
    id: int = 0
    type: str = ""


class InstallationResponse(_Response):
    """Response of ``GET /repos/{owner}/{repo}/installation``."""

    id: int
    app_id: int = 0
    app_slug: str = ""
    account: InstallationAccount | None = None
    repository_selection: str = ""
    access_tokens_url: str = ""


class AccessTokenResponse(_Response):
    """Response of ``POST /app/installations/{id}/access_tokens``."""

    token: str
    expires_at: str = ""
    permissions: dict[str, str] = Field(default_factory=dict)
    repository_selection: str = ""

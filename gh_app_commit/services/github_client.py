"""GitHub REST API client for the Git Data and App installation endpoints.

All calls go through ``call``, which sets the standard GitHub headers and
classifies responses: only 200 and 201 count as success, every other status
raises ``GitHubAPIError`` carrying the raw body.  The typed wrappers below
parse successful responses into the models from ``schemas.github``.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from gh_app_commit.config import settings
from gh_app_commit.errors import GitHubAPIError, UnexpectedResponseError
from gh_app_commit.schemas.commit import RepositoryRef, ScopedToken
from gh_app_commit.schemas.github import (
    AccessTokenResponse,
    BlobRequest,
    BlobResponse,
    CommitRequest,
    CommitResponse,
    CreateRefRequest,
    InstallationResponse,
    RefResponse,
    TagRequest,
    TagResponse,
    TreeRequest,
    TreeResponse,
    UpdateRefRequest,
)

logger = structlog.get_logger()

_GITHUB_HEADERS_BASE = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
}

_SUCCESS_STATUSES = frozenset({httpx.codes.OK, httpx.codes.CREATED})

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _auth_headers(token: str) -> dict[str, str]:
    """Build GitHub API headers with Bearer auth."""
    return {**_GITHUB_HEADERS_BASE, "Authorization": f"Bearer {token}"}


async def call(
    client: httpx.AsyncClient,
    token: str,
    method: str,
    path: str,
    body: BaseModel | dict[str, Any] | None = None,
) -> httpx.Response:
    """Issue an authenticated request against the GitHub API.

    Args:
        client: Shared httpx async client.
        token: App JWT or installation token, sent as a Bearer credential.
        method: HTTP method (``"GET"``, ``"POST"``, ``"PATCH"``, ...).
        path: API path starting with ``/``, appended to the API base URL.
        body: Optional JSON payload.  Pydantic models are dumped as-is, so
            fields set to ``None`` are sent as ``null``.

    Returns:
        The raw response for a 200 or 201 status.

    Raises:
        GitHubAPIError: For any other status, including redirects.
    """
    url = f"{settings.github_api_url.rstrip('/')}{path}"
    headers = _auth_headers(token)
    content: bytes | None = None
    if body is not None:
        if isinstance(body, BaseModel):
            content = body.model_dump_json().encode()
        else:
            content = json.dumps(body).encode()
        headers["Content-Type"] = "application/json"

    resp = await client.request(method, url, headers=headers, content=content)
    if resp.status_code not in _SUCCESS_STATUSES:
        logger.debug("github_api_error", method=method, path=path, status_code=resp.status_code)
        raise GitHubAPIError(resp.status_code, resp.text)
    return resp


def _parse(model: type[_ModelT], resp: httpx.Response) -> _ModelT:
    try:
        return model.model_validate_json(resp.content)
    except ValidationError as exc:
        raise UnexpectedResponseError(
            f"unexpected {model.__name__} payload from {resp.request.method} {resp.request.url}: {exc}"
        ) from exc


def _repo_path(repo: RepositoryRef, suffix: str) -> str:
    return f"/repos/{repo.owner}/{repo.name}/git/{suffix}"


# ---------------------------------------------------------------------------
# App installation endpoints (authenticated with the app JWT)
# ---------------------------------------------------------------------------


async def get_repo_installation(
    client: httpx.AsyncClient,
    app_jwt: str,
    repo: RepositoryRef,
) -> InstallationResponse:
    """Look up the app installation attached to *repo*."""
    resp = await call(client, app_jwt, "GET", f"/repos/{repo.owner}/{repo.name}/installation")
    return _parse(InstallationResponse, resp)


async def create_installation_access_token(
    client: httpx.AsyncClient,
    app_jwt: str,
    installation_id: int,
) -> AccessTokenResponse:
    """Mint an installation access token for *installation_id*."""
    resp = await call(client, app_jwt, "POST", f"/app/installations/{installation_id}/access_tokens")
    return _parse(AccessTokenResponse, resp)


# ---------------------------------------------------------------------------
# Git Data endpoints (authenticated with the installation token)
# ---------------------------------------------------------------------------


async def get_reference(client: httpx.AsyncClient, token: ScopedToken, ref: str) -> RefResponse:
    """Read exactly one reference, e.g. ``refs/heads/main`` or ``refs/tags/v1``.

    Uses the singular ``git/ref/`` endpoint, which answers 404 for a missing
    ref. The plural ``git/refs/`` form returns a list of prefix matches instead.
    """
    short_ref = ref.removeprefix("refs/")
    resp = await call(client, token.token, "GET", _repo_path(token.repo, f"ref/{short_ref}"))
    return _parse(RefResponse, resp)


async def create_blob(
    client: httpx.AsyncClient, token: ScopedToken, blob: BlobRequest
) -> BlobResponse:
    resp = await call(client, token.token, "POST", _repo_path(token.repo, "blobs"), blob)
    return _parse(BlobResponse, resp)


async def create_tree(
    client: httpx.AsyncClient, token: ScopedToken, tree: TreeRequest
) -> TreeResponse:
    resp = await call(client, token.token, "POST", _repo_path(token.repo, "trees"), tree)
    return _parse(TreeResponse, resp)


async def create_commit(
    client: httpx.AsyncClient, token: ScopedToken, commit: CommitRequest
) -> CommitResponse:
    resp = await call(client, token.token, "POST", _repo_path(token.repo, "commits"), commit)
    return _parse(CommitResponse, resp)


async def create_reference(
    client: httpx.AsyncClient, token: ScopedToken, request: CreateRefRequest
) -> RefResponse:
    """Create a new reference; ``request.ref`` must be fully qualified (``refs/...``)."""
    resp = await call(client, token.token, "POST", _repo_path(token.repo, "refs"), request)
    return _parse(RefResponse, resp)


async def update_reference(
    client: httpx.AsyncClient, token: ScopedToken, ref: str, request: UpdateRefRequest
) -> RefResponse:
    """Move an existing reference; *ref* is relative to ``refs/`` (``heads/main``)."""
    resp = await call(
        client, token.token, "PATCH", _repo_path(token.repo, f"refs/{ref}"), request
    )
    return _parse(RefResponse, resp)


async def create_tag(
    client: httpx.AsyncClient, token: ScopedToken, tag: TagRequest
) -> TagResponse:
    """Create an annotated tag object (the reference is created separately)."""
    resp = await call(client, token.token, "POST", _repo_path(token.repo, "tags"), tag)
    return _parse(TagResponse, resp)

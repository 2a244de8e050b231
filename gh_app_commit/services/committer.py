"""Commit pipeline: build a commit from local changes with Git Data API calls.

Coordinates the full flow: read head ref -> stage and diff -> upload blobs ->
create tree -> create commit -> move or create the branch ref -> report.
Each step's failure is raised as ``PipelineStepError`` chained from the
original error.  Nothing is retried and nothing is rolled back: blobs, trees
and commits created before a failure stay unreferenced on the server.
"""

from __future__ import annotations

import base64
from pathlib import Path

import httpx
import structlog

from gh_app_commit.errors import GitHubAppCommitError, LocalIOError, PipelineStepError
from gh_app_commit.schemas.commit import (
    CommitRequest,
    FileChange,
    GitHubOrg,
    GitUser,
    ScopedToken,
    normalize_branch,
)
from gh_app_commit.schemas.github import (
    BlobRequest,
    CreateRefRequest,
    RefResponse,
    TreeItem,
    TreeRequest,
    UpdateRefRequest,
)
from gh_app_commit.schemas.github import CommitRequest as CommitObjectRequest
from gh_app_commit.services import github_client
from gh_app_commit.services.auth import AuthContext
from gh_app_commit.services.reporting import Reporter
from gh_app_commit.services.vcs import ChangeProvider, collect_changed_paths

logger = structlog.get_logger()

BLOB_FILE_MODE = "100644"

_STEP_ERRORS = (GitHubAppCommitError, httpx.HTTPError)


async def upload_file(
    client: httpx.AsyncClient,
    token: ScopedToken,
    path: str,
    workdir: Path,
) -> FileChange:
    """Upload one path as a blob, or mark it deleted if it no longer exists.

    Raises:
        LocalIOError: If the file exists but cannot be read.
    """
    try:
        content = (workdir / path).read_bytes()
    except FileNotFoundError:
        logger.info("file_deleted", path=path)
        return FileChange(path=path, deleted=True)
    except OSError as exc:
        raise LocalIOError(f"error reading file '{path}': {exc}") from exc

    blob = await github_client.create_blob(
        client,
        token,
        BlobRequest(content=base64.b64encode(content).decode("ascii"), encoding="base64"),
    )
    logger.debug("blob_created", path=path, sha=blob.sha, size_bytes=len(content))
    return FileChange(path=path, deleted=False, blob_sha=blob.sha)


async def upload_files(
    client: httpx.AsyncClient,
    token: ScopedToken,
    paths: list[str],
    workdir: str | Path = ".",
) -> list[FileChange]:
    """Upload *paths* one at a time, in order, returning one change per path."""
    root = Path(workdir)
    changes: list[FileChange] = []
    for path in paths:
        try:
            changes.append(await upload_file(client, token, path, root))
        except _STEP_ERRORS as exc:
            raise PipelineStepError(
                "upload_blobs", f"error uploading file '{path}' to GitHub: {exc}"
            ) from exc
    return changes


def build_tree_items(changes: list[FileChange], *, remove_deleted: bool = False) -> list[TreeItem]:
    """Turn uploaded changes into tree entries.

    Deleted paths are left out unless *remove_deleted* is set, in which case
    they get an explicit ``sha: null`` entry that removes them from the base
    tree.
    """
    items: list[TreeItem] = []
    for change in changes:
        if change.deleted:
            if remove_deleted:
                items.append(TreeItem(path=change.path, mode=BLOB_FILE_MODE, type="blob", sha=None))
            continue
        items.append(
            TreeItem(path=change.path, mode=BLOB_FILE_MODE, type="blob", sha=change.blob_sha)
        )
    return items


def format_commit_message(
    message: str,
    coauthors: list[GitUser] | None = None,
    on_behalf_of: GitHubOrg | None = None,
) -> str:
    """Append ``Co-authored-by`` and ``on-behalf-of`` trailers to *message*."""
    if not coauthors and on_behalf_of is None:
        return message

    lines = [f"{message}\n\n"]
    for coauthor in coauthors or []:
        lines.append(f"Co-authored-by: {coauthor.name} <{coauthor.email}>\n")
    if on_behalf_of is not None:
        lines.append(f"on-behalf-of: @{on_behalf_of.slug} <{on_behalf_of.email}>")
    return "".join(lines)


async def reconcile_branch(
    client: httpx.AsyncClient,
    token: ScopedToken,
    branch: str,
    commit_sha: str,
    *,
    force: bool = False,
) -> RefResponse:
    """Point *branch* at *commit_sha*, creating the branch if the update fails.

    Any update failure triggers exactly one create attempt, whatever the
    status code was.
    """
    branch = normalize_branch(branch)
    short_ref = f"heads/{branch}"
    try:
        ref = await github_client.update_reference(
            client, token, short_ref, UpdateRefRequest(sha=commit_sha, force=force)
        )
    except _STEP_ERRORS as exc:
        logger.info(
            "branch_update_failed_creating",
            branch=branch,
            status_code=getattr(exc, "status_code", None),
        )
        ref = await github_client.create_reference(
            client, token, CreateRefRequest(ref=f"refs/heads/{branch}", sha=commit_sha)
        )
        logger.info("branch_created", branch=branch, sha=ref.object.sha)
        return ref

    logger.info("branch_updated", branch=branch, sha=ref.object.sha, force=force)
    return ref


async def commit_and_push(
    client: httpx.AsyncClient,
    auth: AuthContext,
    request: CommitRequest,
    changes: ChangeProvider,
    reporter: Reporter,
    workdir: str | Path = ".",
) -> str:
    """Commit the local changes on top of the head branch and push them.

    Steps:
    1. Read ``refs/heads/<head_branch>``; its SHA is the base tree and parent
    2. Stage and list changed paths through *changes*
    3. Upload each path as a blob (missing paths become deletions)
    4. Create a tree on top of the base tree
    5. Create a single-parent commit with co-author trailers
    6. Update the branch ref, or create it if the update fails
    7. Publish the result to *reporter*

    Returns:
        The SHA of the new commit.

    Raises:
        NotAuthenticatedError: If no scoped token has been registered on *auth*.
        PipelineStepError: If any step fails; the cause is chained.
    """
    token = auth.require_scoped_token()
    log = logger.bind(repo=token.repo.full_name, branch=request.branch)

    head_branch = request.effective_head_branch
    try:
        head = await github_client.get_reference(client, token, f"refs/heads/{head_branch}")
    except _STEP_ERRORS as exc:
        raise PipelineStepError("read_head", f"error getting head reference: {exc}") from exc
    base_sha = head.object.sha
    log.info("head_reference_read", head_branch=head_branch, sha=base_sha)

    try:
        paths = await collect_changed_paths(
            changes, include_new_files=request.options.include_new_files
        )
    except _STEP_ERRORS as exc:
        raise PipelineStepError("collect_changes", f"error getting files to commit: {exc}") from exc
    log.info("changes_collected", count=len(paths))

    file_changes = await upload_files(client, token, paths, workdir)

    tree_request = TreeRequest(
        base_tree=base_sha,
        tree=build_tree_items(file_changes, remove_deleted=request.options.remove_deleted_files),
    )
    log.debug("tree_request", tree=tree_request.model_dump())
    try:
        tree = await github_client.create_tree(client, token, tree_request)
    except _STEP_ERRORS as exc:
        raise PipelineStepError("create_tree", f"error creating tree: {exc}") from exc

    commit_request = CommitObjectRequest(
        message=format_commit_message(request.message, request.coauthors, request.on_behalf_of),
        tree=tree.sha,
        parents=[base_sha],
    )
    try:
        commit = await github_client.create_commit(client, token, commit_request)
    except _STEP_ERRORS as exc:
        raise PipelineStepError("create_commit", f"error creating commit: {exc}") from exc
    log.info("commit_created", sha=commit.sha, tree=tree.sha)

    try:
        ref = await reconcile_branch(
            client, token, request.branch, commit.sha, force=request.options.force
        )
    except _STEP_ERRORS as exc:
        raise PipelineStepError("update_reference", f"error updating reference: {exc}") from exc

    commit_sha = ref.object.sha
    message = (
        f"Commit '{request.message}' pushed to branch '{request.branch}' with SHA '{commit_sha}'"
    )
    log.info("commit_pushed", sha=commit_sha)
    reporter.append_summary(message)
    reporter.set_output("sha", commit_sha)
    return commit_sha

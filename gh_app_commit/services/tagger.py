"""Annotated tag publishing.

A tag object is always created first.  The tag reference is then created if
it does not exist yet, or force-moved to the new tag object if it does.
"""

from __future__ import annotations

import httpx
import structlog

from gh_app_commit.errors import GitHubAppCommitError, PipelineStepError, is_not_found
from gh_app_commit.schemas.commit import TagRequest
from gh_app_commit.schemas.github import CreateRefRequest, UpdateRefRequest
from gh_app_commit.schemas.github import TagRequest as TagObjectRequest
from gh_app_commit.services import github_client
from gh_app_commit.services.auth import AuthContext
from gh_app_commit.services.reporting import Reporter

logger = structlog.get_logger()

_STEP_ERRORS = (GitHubAppCommitError, httpx.HTTPError)


async def create_tag_and_push(
    client: httpx.AsyncClient,
    auth: AuthContext,
    tag: TagRequest,
    reporter: Reporter,
) -> str:
    """Create an annotated tag on ``tag.commit_sha`` and point ``refs/tags/<name>`` at it.

    Returns:
        The SHA of the new tag object.

    Raises:
        NotAuthenticatedError: If no scoped token has been registered on *auth*.
        PipelineStepError: If the tag object cannot be created, the existing
            reference cannot be probed (other than a 404), or the reference
            cannot be created or moved.
    """
    token = auth.require_scoped_token()
    log = logger.bind(repo=token.repo.full_name, tag=tag.tag_name)

    try:
        tag_object = await github_client.create_tag(
            client,
            token,
            TagObjectRequest(
                tag=tag.tag_name, message=tag.message, object=tag.commit_sha, type="commit"
            ),
        )
    except _STEP_ERRORS as exc:
        raise PipelineStepError(
            "create_tag", f"error creating tag '{tag.tag_name}': {exc}"
        ) from exc
    log.debug("tag_object_created", sha=tag_object.sha, commit_sha=tag.commit_sha)

    exists = True
    try:
        await github_client.get_reference(client, token, f"refs/tags/{tag.tag_name}")
    except _STEP_ERRORS as exc:
        if not is_not_found(exc):
            raise PipelineStepError(
                "probe_tag", f"error checking tag reference '{tag.tag_name}': {exc}"
            ) from exc
        exists = False

    if exists:
        log.info("tag_exists_updating")
        try:
            await github_client.update_reference(
                client,
                token,
                f"tags/{tag.tag_name}",
                UpdateRefRequest(sha=tag_object.sha, force=True),
            )
        except _STEP_ERRORS as exc:
            raise PipelineStepError(
                "update_tag_reference", f"error updating tag '{tag.tag_name}': {exc}"
            ) from exc
        message = f"Tag '{tag.tag_name}' updated with SHA {tag_object.sha}"
    else:
        try:
            await github_client.create_reference(
                client,
                token,
                CreateRefRequest(ref=f"refs/tags/{tag.tag_name}", sha=tag_object.sha),
            )
        except _STEP_ERRORS as exc:
            raise PipelineStepError(
                "create_tag_reference",
                f"error creating tag reference '{tag.tag_name}': {exc}",
            ) from exc
        message = f"Tag '{tag.tag_name}' with SHA {tag_object.sha} created"

    log.info("tag_pushed", sha=tag_object.sha, moved=exists)
    reporter.append_summary(message)
    return tag_object.sha


async def publish_tags(
    client: httpx.AsyncClient,
    auth: AuthContext,
    tag_names: list[str],
    message: str,
    commit_sha: str,
    reporter: Reporter,
) -> list[str]:
    """Publish each tag in order, stopping at the first failure."""
    shas = []
    for name in tag_names:
        shas.append(
            await create_tag_and_push(
                client,
                auth,
                TagRequest(tag_name=name, message=message, commit_sha=commit_sha),
                reporter,
            )
        )
    return shas

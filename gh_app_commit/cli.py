"""gh-app-commit -- commit local changes to GitHub as a GitHub App.

Loaded via the ``gh-app-commit`` entry point defined in pyproject.toml, or
``python -m gh_app_commit``.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from datetime import datetime
from pathlib import Path

import click
import httpx
import structlog

from gh_app_commit import __version__
from gh_app_commit.config import Settings
from gh_app_commit.errors import GitHubAppCommitError
from gh_app_commit.logging_config import configure_logging
from gh_app_commit.schemas.commit import CommitOptions, CommitRequest, GitUser, RepositoryRef
from gh_app_commit.services.auth import AuthContext, exchange_for_installation_token
from gh_app_commit.services.committer import commit_and_push
from gh_app_commit.services.reporting import GitHubActionsReporter, Reporter
from gh_app_commit.services.tagger import publish_tags
from gh_app_commit.services.vcs import ChangeProvider, GitCLIChangeProvider

logger = structlog.get_logger()

PRIVATE_KEY_ENV_VAR = "GH_APP_PRIVATE_KEY"
DEFAULT_COMMIT_MESSAGE = "chore: autopublish ${date}"


def decode_private_key(value: str) -> bytes:
    """Return PEM bytes from *value*, which may itself be base64 encoded PEM."""
    try:
        # Wrapped output of `base64 key.pem` carries newlines.
        decoded = base64.b64decode("".join(value.split()), validate=True)
    except (binascii.Error, ValueError):
        return value.encode()
    if b"-----BEGIN" in decoded:
        return decoded
    return value.encode()


def parse_tags(value: str) -> list[str]:
    return [tag.strip() for tag in value.split(",") if tag.strip()]


async def run_commit(
    *,
    auth: AuthContext,
    repo: RepositoryRef,
    request: CommitRequest,
    tags: list[str],
    changes: ChangeProvider,
    reporter: Reporter,
    workdir: str | Path = ".",
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Exchange the app JWT for a scoped token, commit, push, then publish tags.

    Returns:
        The SHA of the new commit.
    """
    async with httpx.AsyncClient(transport=transport) as client:
        token = await exchange_for_installation_token(client, auth.app_assertion, repo)
        auth.set_scoped_token(token)

        commit_sha = await commit_and_push(client, auth, request, changes, reporter, workdir)
        if tags:
            await publish_tags(client, auth, tags, request.message, commit_sha, reporter)
    return commit_sha


@click.command(context_settings={"help_option_names": ["--help"]})
@click.option("-i", "--app-id", default="", help="GitHub App id.")
@click.option("-r", "--repository", default="", help="GitHub repository in the format owner/repo.")
@click.option("-b", "--branch", default="main", show_default=True, help="Target branch to commit to.")
@click.option(
    "-h", "--head-branch", default="", help="Branch to commit from. Defaults to the target branch."
)
@click.option(
    "-p",
    "--private-key-file",
    default="",
    help=f"Path to the private key PEM file. {PRIVATE_KEY_ENV_VAR} has priority over this.",
)
@click.option("-m", "--message", default=DEFAULT_COMMIT_MESSAGE, help="Commit message.")
@click.option(
    "-c", "--coauthors", default="", help="Co-authors as 'Name1 <email1>, Name2 <email2>'."
)
@click.option("-t", "--tags", default="", help="Tags separated by commas, 'tag1, tag2'.")
@click.option(
    "-a/-A",
    "--add-new-files/--no-add-new-files",
    default=True,
    show_default=True,
    help="Include untracked files in the commit.",
)
@click.option("-f", "--force", is_flag=True, help="Force-update the target branch.")
@click.option(
    "-C",
    "--workdir",
    default=".",
    type=click.Path(file_okay=False, exists=True),
    help="Working tree to commit from.",
)
@click.version_option(__version__, "--version")
def main(
    app_id: str,
    repository: str,
    branch: str,
    head_branch: str,
    private_key_file: str,
    message: str,
    coauthors: str,
    tags: str,
    add_new_files: bool,
    force: bool,
    workdir: str,
) -> None:
    """Commit local changes to a GitHub repository through the Git Data API."""
    settings = Settings()
    configure_logging(
        json_logs=settings.github_actions and not settings.debug,
        log_level=settings.log_level,
    )

    if not repository:
        raise click.UsageError(
            "repository is required. Use -r to specify the repository in the format owner/repo"
        )
    try:
        repo = RepositoryRef.parse(repository)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="'-r'") from exc
    click.echo(f"Owner: {repo.owner}, Repo: {repo.name}")

    if not app_id:
        raise click.UsageError("GitHub app id is required. Use -i to specify the GitHub app id")

    auth = AuthContext()
    try:
        if settings.gh_app_private_key:
            auth.sign_app_assertion(app_id, decode_private_key(settings.gh_app_private_key))
        elif private_key_file:
            auth.sign_app_assertion_from_file(app_id, private_key_file)
        else:
            raise click.UsageError(
                f"you need to provide a private key in the environment variable "
                f"{PRIVATE_KEY_ENV_VAR} or a filename with the -p option"
            )
    except GitHubAppCommitError as exc:
        raise click.ClickException(f"failed to sign JWT token: {exc}") from exc

    try:
        coauthor_list = GitUser.parse_list(coauthors)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="'-c'") from exc

    if message == DEFAULT_COMMIT_MESSAGE:
        message = f"chore: autopublish {datetime.now().astimezone().isoformat(timespec='seconds')}"

    try:
        request = CommitRequest(
            branch=branch,
            head_branch=head_branch or None,
            coauthors=coauthor_list,
            message=message,
            options=CommitOptions(include_new_files=add_new_files, force=force),
        )
    except ValueError as exc:
        raise click.BadParameter("branch must not be empty", param_hint="'-b'") from exc

    try:
        commit_sha = asyncio.run(
            run_commit(
                auth=auth,
                repo=repo,
                request=request,
                tags=parse_tags(tags),
                changes=GitCLIChangeProvider(workdir),
                reporter=GitHubActionsReporter.from_settings(settings),
                workdir=workdir,
            )
        )
    except (GitHubAppCommitError, httpx.HTTPError) as exc:
        logger.error("commit_failed", error=str(exc), exc_info=True)
        raise click.ClickException(f"failed to commit and push: {exc}") from exc

    click.echo(commit_sha)

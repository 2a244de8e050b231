"""Exception hierarchy for the commit and tag pipeline.

Every failure raised by this package derives from ``GitHubAppCommitError`` so
the CLI can report it uniformly.  Step context is added by chaining: the
pipeline raises ``PipelineStepError`` *from* the underlying error, which keeps
the original (often a ``GitHubAPIError``) reachable through ``__cause__``.
"""

from __future__ import annotations


class GitHubAppCommitError(Exception):
    """Base class for all errors raised by gh_app_commit."""


class KeyFormatError(GitHubAppCommitError):
    """The GitHub App private key could not be parsed."""


class NotAuthenticatedError(GitHubAppCommitError):
    """A credential was required but has not been registered yet."""


class LocalIOError(GitHubAppCommitError):
    """A local filesystem or subprocess operation failed."""


class GitHubAPIError(GitHubAppCommitError):
    """A GitHub REST call returned a status other than 200 or 201.

    The raw response body is kept verbatim for diagnostics.
    """

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"error calling github api, status code: {status_code}, response: {body}"
        )

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class UnexpectedResponseError(GitHubAppCommitError):
    """A successful GitHub response did not have the expected JSON shape."""


class PipelineStepError(GitHubAppCommitError):
    """Wraps a failure with the name of the pipeline step that produced it."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        super().__init__(message)


def is_not_found(exc: BaseException | None) -> bool:
    """Return True if *exc*, or any error it was chained from, is a GitHub 404."""
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, GitHubAPIError):
            return exc.is_not_found
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False

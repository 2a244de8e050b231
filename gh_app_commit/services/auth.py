"""GitHub App authentication: app JWT signing and installation token exchange.

A GitHub App cannot write to a repository with its own JWT.  The JWT is used
once to look up the installation attached to the target repository and mint
an installation access token, which then authenticates every Git Data call.

``AuthContext`` is created by the top-level caller and passed to the
pipeline.  Both of its credentials are set at most once: the first writer
wins and later attempts are ignored, so a run never switches credentials
while requests signed with the previous one are still in flight.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path

import httpx
import jwt
import structlog
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from gh_app_commit.errors import (
    GitHubAppCommitError,
    KeyFormatError,
    LocalIOError,
    NotAuthenticatedError,
    PipelineStepError,
)
from gh_app_commit.schemas.commit import RepositoryRef, ScopedToken
from gh_app_commit.services.github_client import (
    create_installation_access_token,
    get_repo_installation,
)

logger = structlog.get_logger()

APP_JWT_TTL_SECONDS = 5 * 60


def _load_rsa_private_key(private_key_pem: bytes | str) -> rsa.RSAPrivateKey:
    if isinstance(private_key_pem, str):
        private_key_pem = private_key_pem.encode()
    try:
        key = serialization.load_pem_private_key(private_key_pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise KeyFormatError(f"error parsing private key, {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyFormatError("error parsing private key, not an RSA key")
    return key


def generate_app_jwt(
    app_id: str,
    private_key_pem: bytes | str,
    *,
    now: int | None = None,
) -> str:
    """Sign an RS256 app JWT valid for five minutes from *now*.

    Raises:
        KeyFormatError: If *private_key_pem* is not a PEM encoded RSA key.
    """
    key = _load_rsa_private_key(private_key_pem)
    issued_at = int(time.time()) if now is None else now
    claims = {
        "iat": issued_at,
        "exp": issued_at + APP_JWT_TTL_SECONDS,
        "iss": app_id,
    }
    return jwt.encode(claims, key, algorithm="RS256")


class AuthContext:
    """Holds the app JWT and the repository-scoped token for one run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._assertion_done = False
        self._assertion: str | None = None
        self._assertion_error: Exception | None = None
        self._scoped_token: ScopedToken | None = None

    def sign_app_assertion(self, app_id: str, private_key_pem: bytes | str) -> str:
        """Sign the app JWT on the first call and return the cached result afterwards.

        Later calls ignore their arguments.  If the first attempt failed, its
        error is raised again on every later call.
        """
        with self._lock:
            if not self._assertion_done:
                try:
                    self._assertion = generate_app_jwt(app_id, private_key_pem)
                    logger.info("app_jwt_signed", app_id=app_id)
                except Exception as exc:
                    # Re-raised below and on every later call.
                    self._assertion_error = exc
                self._assertion_done = True
            if self._assertion_error is not None:
                raise self._assertion_error
            return self._assertion  # type: ignore[return-value]

    def sign_app_assertion_from_file(self, app_id: str, pem_path: str | Path) -> str:
        """Read a PEM file and delegate to ``sign_app_assertion``."""
        if not str(pem_path):
            raise LocalIOError("PEM file not provided")
        try:
            private_key_pem = Path(pem_path).read_bytes()
        except OSError as exc:
            raise LocalIOError(f"error reading PEM file: {exc}") from exc
        return self.sign_app_assertion(app_id, private_key_pem)

    @property
    def app_assertion(self) -> str:
        with self._lock:
            if self._assertion is None:
                raise NotAuthenticatedError("GitHub App JWT not signed")
            return self._assertion

    def set_scoped_token(self, token: ScopedToken | None) -> None:
        """Register the installation token. Only the first registration sticks."""
        if token is None:
            raise NotAuthenticatedError("GitHub App token not provided")
        with self._lock:
            if self._scoped_token is None:
                self._scoped_token = token
            else:
                logger.debug("scoped_token_already_set", repo=token.repo.full_name)

    def require_scoped_token(self) -> ScopedToken:
        """Return the installation token or fail before any network call is made."""
        with self._lock:
            if self._scoped_token is None:
                raise NotAuthenticatedError("GitHub App token not initialized")
            return self._scoped_token


async def exchange_for_installation_token(
    client: httpx.AsyncClient,
    app_jwt: str,
    repo: RepositoryRef,
) -> ScopedToken:
    """Trade the app JWT for an installation access token scoped to *repo*."""
    try:
        installation = await get_repo_installation(client, app_jwt, repo)
    except GitHubAppCommitError as exc:
        raise PipelineStepError(
            "get_installation", f"error getting app installation details: {exc}"
        ) from exc

    try:
        access = await create_installation_access_token(client, app_jwt, installation.id)
    except GitHubAppCommitError as exc:
        raise PipelineStepError(
            "create_access_token", f"error generating installation access token: {exc}"
        ) from exc

    logger.info(
        "installation_token_created",
        repo=repo.full_name,
        installation_id=installation.id,
        expires_at=access.expires_at,
    )
    return ScopedToken(repo=repo, token=access.token)

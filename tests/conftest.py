"""Shared test fixtures: RSA keys, a fake GitHub API, and an authenticated context."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from gh_app_commit.schemas.commit import RepositoryRef, ScopedToken
from gh_app_commit.services.auth import AuthContext
from gh_app_commit.services.reporting import InMemoryReporter
from gh_app_commit.services.vcs import InMemoryChangeProvider

REPO = RepositoryRef(owner="octo", name="hello")
GIT = "/repos/octo/hello/git"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeGitHub:
    """Routes requests by (method, path) and records every request it sees.

    Unrouted requests get a 404 so probes for missing refs behave like GitHub.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Handler] = {}

    def add(self, method: str, path: str, status: int = 200, payload: Any = None) -> None:
        self.routes[(method, path)] = lambda _req: httpx.Response(status, json=payload)

    def add_text(self, method: str, path: str, status: int, text: str) -> None:
        self.routes[(method, path)] = lambda _req: httpx.Response(status, text=text)

    def add_handler(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method, path)] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return route(request)

    def calls(self, method: str, path: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and (path is None or r.url.path == path)
        ]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content)


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key: rsa.RSAPrivateKey) -> bytes:
    """PEM encoded RSA private key in the format GitHub hands out."""
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
async def http_client(fake_github: FakeGitHub) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Yield an httpx AsyncClient whose transport is the fake GitHub API."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_github.handler)) as client:
        yield client


@pytest.fixture
def scoped_token() -> ScopedToken:
    return ScopedToken(repo=REPO, token="ghs_installation")


@pytest.fixture
def auth(scoped_token: ScopedToken) -> AuthContext:
    """AuthContext with an installation token already registered."""
    ctx = AuthContext()
    ctx.set_scoped_token(scoped_token)
    return ctx


@pytest.fixture
def reporter() -> InMemoryReporter:
    return InMemoryReporter()


@pytest.fixture
def changes() -> InMemoryChangeProvider:
    return InMemoryChangeProvider()

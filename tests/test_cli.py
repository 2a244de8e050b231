"""Tests for the gh-app-commit command line and the end-to-end run."""

from __future__ import annotations

import base64

import httpx
import pytest
from click.testing import CliRunner

from conftest import GIT, REPO, FakeGitHub
from gh_app_commit import cli
from gh_app_commit.schemas.commit import CommitRequest
from gh_app_commit.services.auth import AuthContext
from gh_app_commit.services.reporting import InMemoryReporter
from gh_app_commit.services.vcs import InMemoryChangeProvider


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    """Keep the runner's own GitHub Actions variables out of CLI tests."""
    for name in (
        "GH_APP_PRIVATE_KEY",
        "GITHUB_ACTIONS",
        "GITHUB_OUTPUT",
        "GITHUB_STEP_SUMMARY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def captured_runs(monkeypatch) -> list[dict]:
    """Replace the network run with a recorder returning a fixed SHA."""
    runs: list[dict] = []

    async def fake_run_commit(**kwargs) -> str:
        runs.append(kwargs)
        return "commit-sha"

    monkeypatch.setattr(cli, "run_commit", fake_run_commit)
    return runs


def _invoke(args: list[str], env: dict[str, str] | None = None):
    return CliRunner().invoke(cli.main, args, env=env)


def test_version() -> None:
    result = _invoke(["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_missing_repository() -> None:
    result = _invoke(["-i", "1"])
    assert result.exit_code != 0
    assert "repository is required" in result.output


def test_invalid_repository_format() -> None:
    result = _invoke(["-r", "not-a-repo", "-i", "1"])
    assert result.exit_code != 0
    assert "invalid repository format" in result.output


def test_missing_app_id() -> None:
    result = _invoke(["-r", "octo/hello"])
    assert result.exit_code != 0
    assert "GitHub app id is required" in result.output


def test_missing_private_key() -> None:
    result = _invoke(["-r", "octo/hello", "-i", "1"])
    assert result.exit_code != 0
    assert "GH_APP_PRIVATE_KEY" in result.output


def test_invalid_pem_in_env() -> None:
    result = _invoke(["-r", "octo/hello", "-i", "1"], env={"GH_APP_PRIVATE_KEY": "not a pem"})
    assert result.exit_code == 1
    assert "failed to sign JWT token" in result.output


def test_missing_pem_file(tmp_path) -> None:
    result = _invoke(["-r", "octo/hello", "-i", "1", "-p", str(tmp_path / "none.pem")])
    assert result.exit_code == 1
    assert "error reading PEM file" in result.output


def test_pem_from_env_runs_commit(private_key_pem: bytes, captured_runs: list[dict]) -> None:
    """A raw PEM in the environment is used and the defaults reach the request."""
    result = _invoke(
        ["-r", "octo/hello", "-i", "123"],
        env={"GH_APP_PRIVATE_KEY": private_key_pem.decode()},
    )

    assert result.exit_code == 0, result.output
    assert "commit-sha" in result.output
    run = captured_runs[0]
    assert run["repo"] == REPO
    request: CommitRequest = run["request"]
    assert request.branch == "main"
    assert request.effective_head_branch == "main"
    assert request.options.include_new_files is True
    assert request.options.force is False
    assert request.message.startswith("chore: autopublish ")
    assert "${date}" not in request.message
    assert run["tags"] == []


def test_base64_pem_from_env(private_key_pem: bytes, captured_runs: list[dict]) -> None:
    encoded = base64.b64encode(private_key_pem).decode()

    result = _invoke(["-r", "octo/hello", "-i", "123"], env={"GH_APP_PRIVATE_KEY": encoded})

    assert result.exit_code == 0, result.output
    assert len(captured_runs) == 1


def test_wrapped_base64_pem_from_env(private_key_pem: bytes, captured_runs: list[dict]) -> None:
    """Line-wrapped base64 with a trailing newline decodes to the PEM."""
    wrapped = base64.encodebytes(private_key_pem).decode()
    assert "\n" in wrapped.rstrip("\n")

    assert cli.decode_private_key(wrapped) == private_key_pem
    result = _invoke(["-r", "octo/hello", "-i", "123"], env={"GH_APP_PRIVATE_KEY": wrapped})

    assert result.exit_code == 0, result.output
    assert len(captured_runs) == 1


def test_pem_from_file_with_options(
    tmp_path, private_key_pem: bytes, captured_runs: list[dict]
) -> None:
    pem_file = tmp_path / "app.pem"
    pem_file.write_bytes(private_key_pem)

    result = _invoke(
        [
            "-r", "octo/hello",
            "-i", "123",
            "-p", str(pem_file),
            "-b", "release",
            "-h", "develop",
            "-m", "feat: custom",
            "-c", "Ada <ada@example.com>, Bob <bob@example.com>",
            "-t", "v1, latest ,",
            "--no-add-new-files",
            "-f",
        ]
    )

    assert result.exit_code == 0, result.output
    run = captured_runs[0]
    request: CommitRequest = run["request"]
    assert request.branch == "release"
    assert request.head_branch == "develop"
    assert request.message == "feat: custom"
    assert [c.name for c in request.coauthors] == ["Ada", "Bob"]
    assert request.options.include_new_files is False
    assert request.options.force is True
    assert run["tags"] == ["v1", "latest"]


def test_invalid_coauthor(private_key_pem: bytes, captured_runs: list[dict]) -> None:
    result = _invoke(
        ["-r", "octo/hello", "-i", "1", "-c", "Ada ada@example.com"],
        env={"GH_APP_PRIVATE_KEY": private_key_pem.decode()},
    )

    assert result.exit_code != 0
    assert "invalid coauthor format" in result.output
    assert captured_runs == []


def test_decode_private_key_passthrough() -> None:
    assert cli.decode_private_key("-----BEGIN X-----") == b"-----BEGIN X-----"
    # Valid base64 that does not decode to PEM is used as-is.
    assert cli.decode_private_key("Zm9v") == b"Zm9v"


@pytest.mark.asyncio
async def test_run_commit_end_to_end(tmp_path, private_key_pem: bytes) -> None:
    """JWT -> installation token -> commit -> branch update -> tag, all through the API."""
    (tmp_path / "a.txt").write_text("hello")
    fake = FakeGitHub()
    fake.add("GET", "/repos/octo/hello/installation", 200, {"id": 5})
    fake.add("POST", "/app/installations/5/access_tokens", 201, {"token": "ghs_run"})
    fake.add("GET", f"{GIT}/ref/heads/main", 200, {"object": {"sha": "base-sha"}})
    fake.add("POST", f"{GIT}/blobs", 201, {"sha": "blob-sha"})
    fake.add("POST", f"{GIT}/trees", 201, {"sha": "tree-sha"})
    fake.add("POST", f"{GIT}/commits", 201, {"sha": "commit-sha"})
    fake.add("PATCH", f"{GIT}/refs/heads/main", 200, {"object": {"sha": "commit-sha"}})
    fake.add("POST", f"{GIT}/tags", 201, {"sha": "tag-sha"})
    fake.add("POST", f"{GIT}/refs", 201, {"object": {"sha": "tag-sha"}})

    auth = AuthContext()
    auth.sign_app_assertion("123", private_key_pem)
    reporter = InMemoryReporter()

    sha = await cli.run_commit(
        auth=auth,
        repo=REPO,
        request=CommitRequest(branch="main", message="chore: publish"),
        tags=["v1"],
        changes=InMemoryChangeProvider(["a.txt"]),
        reporter=reporter,
        workdir=tmp_path,
        transport=httpx.MockTransport(fake.handler),
    )

    assert sha == "commit-sha"
    assert auth.require_scoped_token().token == "ghs_run"
    app_calls = fake.requests[:2]
    assert all(r.headers["authorization"] == f"Bearer {auth.app_assertion}" for r in app_calls)
    assert all(r.headers["authorization"] == "Bearer ghs_run" for r in fake.requests[2:])
    assert FakeGitHub.body(fake.calls("POST", f"{GIT}/tags")[0])["message"] == "chore: publish"
    assert reporter.outputs == {"sha": "commit-sha"}
    assert len(reporter.summaries) == 2

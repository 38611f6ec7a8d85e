"""Tests for the git runner against real local repositories"""
import shutil
import subprocess
from pathlib import Path

import pytest
from sqlalchemy.future import select

from app.models.repository import Repository
from app.services.credential_vault import CredentialVault
from app.services.git import GitCommandError, GitRunner, is_missing_branch_error
from app.services.repo_sync import RepositorySyncEngine
from tests.helpers import create_installation, create_repository

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

CLONE_HOST = "example.test"
# First token FakeGitHub mints for installation 1001
TOKEN = "ghs_token_1001_1"


def git(*args: str, cwd: Path) -> str:
    result = subprocess.run(["git", *args], cwd=str(cwd), check=True, capture_output=True, text=True)
    return result.stdout.strip()


def commit(work: Path, name: str) -> str:
    (work / name).write_text(name)
    git("add", name, cwd=work)
    git("commit", "-m", f"add {name}", cwd=work)
    return git("rev-parse", "HEAD", cwd=work)


@pytest.fixture
def upstream(tmp_path, monkeypatch):
    """
    A bare ``acme/api`` repository with only a ``master`` branch.

    A throwaway HOME rewrites the token-bearing clone URL to the bare
    repository, so the code under test runs unchanged.
    """
    home = tmp_path / "home"
    home.mkdir()
    remote_root = tmp_path / "remote"
    (remote_root / "acme").mkdir(parents=True)
    (home / ".gitconfig").write_text(
        "[user]\n"
        "\tname = Scanner Tests\n"
        "\temail = tests@example.test\n"
        f'[url "{remote_root.as_uri()}/"]\n'
        f"\tinsteadOf = https://x-access-token:{TOKEN}@{CLONE_HOST}/\n"
    )
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")

    work = tmp_path / "work"
    work.mkdir()
    git("init", cwd=work)
    git("symbolic-ref", "HEAD", "refs/heads/master", cwd=work)
    commit(work, "README")
    bare = remote_root / "acme" / "api.git"
    git("clone", "--bare", str(work), str(bare), cwd=tmp_path)
    return work, bare


async def reload(session, repository_id) -> Repository:
    result = await session.execute(
        select(Repository).where(Repository.id == repository_id).execution_options(populate_existing=True)
    )
    return result.scalars().one()


@pytest.mark.asyncio
async def test_sync_records_the_working_copy_head(session, fake_github, upstream, workspace):
    work, bare = upstream
    installation = await create_installation(session, provider_id=1001)
    repository = await create_repository(session, installation, default_branch="main")
    engine = RepositorySyncEngine(
        session,
        CredentialVault(session, fake_github),
        git=GitRunner(timeout=60),
        workspace_dir=str(workspace),
        clone_host=CLONE_HOST,
    )

    path = Path(await engine.ensure_fresh(installation.id, "acme", "api"))

    stored = await reload(session, repository.id)
    assert stored.default_branch == "master"
    assert stored.needs_refresh is False
    assert stored.last_commit_sha == git("rev-parse", "HEAD", cwd=path)
    assert stored.last_commit_sha == git("rev-parse", "master", cwd=bare)

    new_head = commit(work, "CHANGELOG")
    git("push", str(bare), "master", cwd=work)

    await engine.force_refresh(installation.id, "acme", "api")

    stored = await reload(session, repository.id)
    assert stored.last_commit_sha == new_head
    assert git("rev-parse", "HEAD", cwd=path) == new_head
    assert (path / "CHANGELOG").exists()
    assert git("remote", "get-url", "origin", cwd=path) == f"https://{CLONE_HOST}/acme/api.git"
    assert TOKEN not in (path / ".git" / "config").read_text()
    assert fake_github.minted == [1001]


@pytest.mark.asyncio
async def test_missing_branch_is_recognized(upstream, tmp_path):
    url = f"https://x-access-token:{TOKEN}@{CLONE_HOST}/acme/api.git"

    with pytest.raises(GitCommandError) as exc_info:
        await GitRunner(timeout=60).clone(
            url, tmp_path / "copy", "main", public_url=f"https://{CLONE_HOST}/acme/api.git", secret=TOKEN
        )

    assert is_missing_branch_error(exc_info.value)
    assert TOKEN not in str(exc_info.value)


@pytest.mark.asyncio
async def test_unreachable_remote_is_not_a_missing_branch(upstream, tmp_path):
    url = f"https://x-access-token:{TOKEN}@{CLONE_HOST}/acme/gone.git"

    with pytest.raises(GitCommandError) as exc_info:
        await GitRunner(timeout=60).clone(
            url, tmp_path / "copy", "main", public_url=f"https://{CLONE_HOST}/acme/gone.git", secret=TOKEN
        )

    assert not is_missing_branch_error(exc_info.value)

"""Pytest configuration and fixtures"""
import os

# Settings are read once at import time, so the test environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "ab" * 32)
os.environ.setdefault("GITHUB_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("REGISTRATION_API_KEY", "test-registration-key")
os.environ.setdefault("APP_URL", "http://scanner.test")

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.exceptions import Unauthorized, UpstreamFailure
from app.dependencies.services import (
    get_credential_vault,
    get_git_runner,
    get_sync_engine,
    get_worker_launcher,
)
from app.main import app
from app.schemas.job import JobDescriptor
from app.services.credential_vault import CredentialVault
from app.services.git import GitCommandError
from app.services.github_app import get_github_client
from app.services.repo_sync import RepositorySyncEngine
from app.services.worker_launcher import WorkerLaunchError

MISSING_BRANCH_STDERR = (
    "Cloning into 'repo'...\n"
    "warning: Could not find remote branch {branch} to clone.\n"
    "fatal: Remote branch {branch} not found in upstream origin\n"
)


class FakeGitHub:
    """Stands in for GitHubAppClient; counts token mints."""

    def __init__(self):
        self.minted: List[int] = []
        self.repositories: List[Dict[str, Any]] = []
        self.metadata: Dict[str, Any] = {}
        # OAuth code -> GitHub account that authorized it
        self.oauth_accounts: Dict[str, Dict[str, Any]] = {}
        self.fail = False
        self.ttl = timedelta(hours=1)

    async def create_installation_token(self, installation_id: int):
        if self.fail:
            raise UpstreamFailure("GitHub API returned 401")
        self.minted.append(installation_id)
        token = f"ghs_token_{installation_id}_{len(self.minted)}"
        return token, datetime.now(timezone.utc) + self.ttl

    async def list_installation_repositories(self, token: str) -> List[Dict[str, Any]]:
        return list(self.repositories)

    async def get_repository(self, token: str, owner: str, repo: str) -> Dict[str, Any]:
        return dict(
            {"full_name": f"{owner}/{repo}", "default_branch": "main", "private": True, "languages": {}},
            **self.metadata,
        )

    async def exchange_oauth_code(self, code: str) -> str:
        if code not in self.oauth_accounts:
            raise Unauthorized("GitHub authorization code was rejected")
        return f"gho_{code}"

    async def get_authenticated_user(self, access_token: str) -> Dict[str, Any]:
        return self.oauth_accounts[access_token[len("gho_"):]]


class FakeGit:
    """Stands in for GitRunner; clones create an empty ``.git`` directory."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.missing_branches: set = set()
        self.fail = False
        self.sha = "a" * 40

    def _check(self, branch: str) -> None:
        if self.fail:
            raise GitCommandError("git clone failed", 128, "fatal: unable to access repository\n")
        if branch in self.missing_branches:
            raise GitCommandError(
                "git clone failed", 128, MISSING_BRANCH_STDERR.format(branch=branch)
            )

    async def clone(self, url: str, dest: Path, branch: str, public_url: str, secret: Optional[str] = None) -> None:
        self.calls.append(("clone", url, str(dest), branch))
        self._check(branch)
        (dest / ".git").mkdir(parents=True, exist_ok=True)

    async def update(self, url: str, dest: Path, branch: str, secret: Optional[str] = None) -> None:
        self.calls.append(("update", url, str(dest), branch))
        self._check(branch)

    async def head_sha(self, dest: Path) -> str:
        return self.sha


class FakeLauncher:
    """Records job descriptors instead of starting containers."""

    def __init__(self):
        self.jobs: List[JobDescriptor] = []
        self.fail = False

    async def launch(self, job: JobDescriptor) -> str:
        if self.fail:
            raise WorkerLaunchError("Docker spawn failed: image not found")
        self.jobs.append(job)
        return f"scan-{job.run_id}"


@pytest_asyncio.fixture
async def test_db():
    """Create in-memory test database"""
    # A single shared connection keeps the in-memory database alive
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    yield TestSessionLocal

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(test_db):
    async with test_db() as session:
        yield session


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def fake_launcher():
    return FakeLauncher()


@pytest.fixture
def workspace(tmp_path):
    return tmp_path / "workspace"


@pytest_asyncio.fixture
async def client(test_db, fake_github, fake_git, fake_launcher, workspace):
    """Create test client with outside collaborators replaced"""

    async def override_get_db():
        async with test_db() as session:
            yield session

    def override_sync_engine(
        session: AsyncSession = Depends(get_db),
        vault: CredentialVault = Depends(get_credential_vault),
    ) -> RepositorySyncEngine:
        return RepositorySyncEngine(session, vault, git=fake_git, workspace_dir=str(workspace))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_github_client] = lambda: fake_github
    app.dependency_overrides[get_git_runner] = lambda: fake_git
    app.dependency_overrides[get_worker_launcher] = lambda: fake_launcher
    app.dependency_overrides[get_sync_engine] = override_sync_engine

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

"""Repository Sync Engine.

Keeps one working copy per GitHub repository under
``<WORKSPACE_DIR>/repos/<owner>/<repo>`` and tracks, on the repository row,
whether that copy is current (``needs_refresh``) and which commit it holds.
"""
import asyncio
import logging
import re
import weakref
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.database import utcnow
from app.core.exceptions import NotFound, UpstreamFailure, ValidationFailure
from app.core.scan_config import BRANCH_FALLBACKS, DEFAULT_BRANCH
from app.models.repository import Repository
from app.services.credential_vault import CredentialVault
from app.services.git import GitCommandError, GitRunner, is_missing_branch_error

logger = logging.getLogger(__name__)

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

# One lock per repository full name, shared by every engine in this process.
# Entries disappear once no sync holds or waits on the lock.
_repo_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(full_name: str) -> asyncio.Lock:
    lock = _repo_locks.get(full_name)
    if lock is None:
        lock = _repo_locks[full_name] = asyncio.Lock()
    return lock


def working_copy_relpath(owner: str, repo: str) -> str:
    """Workspace-relative location of a repository's working copy, always ``/``-separated."""
    for part in (owner, repo):
        if not _NAME_PATTERN.match(part) or part in (".", ".."):
            raise ValidationFailure(f"Invalid repository name component: {part!r}")
    return f"repos/{owner}/{repo}"


class RepositorySyncEngine:
    def __init__(
        self,
        session: AsyncSession,
        vault: CredentialVault,
        git: Optional[GitRunner] = None,
        workspace_dir: Optional[str] = None,
        clone_host: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._vault = vault
        self._git = git or GitRunner(timeout=settings.GIT_TIMEOUT_SECONDS)
        self._workspace = Path(workspace_dir or settings.WORKSPACE_DIR)
        self._clone_host = clone_host or settings.GITHUB_CLONE_HOST
        self._clock = clock

    def working_copy_path(self, owner: str, repo: str) -> Path:
        return self._workspace / working_copy_relpath(owner, repo)

    async def _load(self, installation_id: str, full_name: str) -> Repository:
        stmt = (
            select(Repository)
            .where(Repository.installation_id == installation_id, Repository.full_name == full_name)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        repository = result.scalars().first()
        if repository is None:
            raise NotFound(f"Repository {full_name} not found")
        return repository

    async def ensure_fresh(self, installation_id: str, owner: str, repo: str) -> str:
        """
        Return the local path of an up-to-date working copy.

        Fast path: the row is not flagged and the copy exists, so nothing is
        fetched. Otherwise clone (no copy yet) or update (copy exists), then
        record freshness, head commit and sync time in one write.
        """
        full_name = f"{owner}/{repo}"
        path = self.working_copy_path(owner, repo)

        async with _lock_for(full_name):
            repository = await self._load(installation_id, full_name)
            has_copy = (path / ".git").is_dir()
            if not repository.needs_refresh and has_copy:
                return str(path)

            token = await self._vault.get_token(installation_id)
            auth_url = f"https://x-access-token:{token}@{self._clone_host}/{full_name}.git"
            public_url = f"https://{self._clone_host}/{full_name}.git"

            if has_copy:
                logger.info("Updating working copy of %s", full_name)

                async def sync(branch: str) -> None:
                    await self._git.update(auth_url, path, branch, secret=token)
            else:
                logger.info("Cloning %s", full_name)

                async def sync(branch: str) -> None:
                    await self._git.clone(auth_url, path, branch, public_url=public_url, secret=token)

            try:
                branch = await self._with_branch_fallback(sync, repository.default_branch or DEFAULT_BRANCH, full_name)
                commit_sha = await self._git.head_sha(path)
            except GitCommandError as exc:
                logger.error("Sync of %s failed: %s", full_name, exc)
                raise UpstreamFailure(f"Failed to sync repository {full_name}") from exc

            values = {
                "needs_refresh": False,
                "last_commit_sha": commit_sha,
                "last_cloned_at": self._clock(),
            }
            if branch != repository.default_branch:
                logger.info("Recording %s as default branch of %s", branch, full_name)
                values["default_branch"] = branch
            await self._session.execute(
                update(Repository).where(Repository.id == repository.id).values(**values)
            )
            await self._session.commit()
            logger.info("Synced %s at %s", full_name, commit_sha)
            return str(path)

    async def _with_branch_fallback(
        self, sync: Callable[[str], Awaitable[None]], branch: str, full_name: str
    ) -> str:
        try:
            await sync(branch)
            return branch
        except GitCommandError as exc:
            fallback = BRANCH_FALLBACKS.get(branch)
            if fallback is None or not is_missing_branch_error(exc):
                raise
            logger.info("Branch %s not found for %s, trying %s", branch, full_name, fallback)
        await sync(fallback)
        return fallback

    async def force_refresh(self, installation_id: str, owner: str, repo: str) -> str:
        """Flag the repository stale, then sync it."""
        full_name = f"{owner}/{repo}"
        result = await self._session.execute(
            update(Repository)
            .where(Repository.installation_id == installation_id, Repository.full_name == full_name)
            .values(needs_refresh=True)
        )
        await self._session.commit()
        if result.rowcount == 0:
            raise NotFound(f"Repository {full_name} not found")
        return await self.ensure_fresh(installation_id, owner, repo)

    async def current_state(self, installation_id: str, owner: str, repo: str) -> Tuple[bool, Optional[str]]:
        """(needs_refresh, last_commit_sha) as currently stored."""
        repository = await self._load(installation_id, f"{owner}/{repo}")
        return repository.needs_refresh, repository.last_commit_sha

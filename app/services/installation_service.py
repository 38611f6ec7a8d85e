"""Installation and repository catalogue operations shared by webhooks and the API."""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.database import utcnow
from app.core.exceptions import Forbidden, NotFound
from app.core.security import generate_id
from app.models.installation import CachedToken, Installation
from app.models.project import Project
from app.models.repository import Repository
from app.models.run import Run
from app.models.user import User
from app.schemas.webhook import RepositoryInfo
from app.services.credential_vault import CredentialVault
from app.services.github_app import GitHubAppClient

logger = logging.getLogger(__name__)


class InstallationService:
    @staticmethod
    async def get_by_provider_id(session: AsyncSession, provider_installation_id: int) -> Optional[Installation]:
        stmt = select(Installation).where(Installation.installation_id == provider_installation_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def upsert_installation(
        session: AsyncSession,
        provider_installation_id: int,
        account_login: str,
        account_type: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Installation:
        """
        Create the installation row, or refresh it if this id was seen before.

        A user who verified the installing GitHub account is linked right away.
        Does not commit.
        """
        installation = await InstallationService.get_by_provider_id(session, provider_installation_id)
        if installation is None:
            installation = Installation(
                id=generate_id(),
                installation_id=provider_installation_id,
                account_login=account_login,
                account_type=account_type,
                provider_metadata={"installation": metadata or {}},
                installed_at=utcnow(),
            )
            session.add(installation)
        else:
            installation.account_login = account_login
            installation.account_type = account_type
            installation.suspended_at = None
            if metadata:
                installation.provider_metadata = {"installation": metadata}

        if installation.user_id is None:
            result = await session.execute(select(User.id).where(User.github_login == account_login))
            owner_id = result.scalars().first()
            if owner_id is not None:
                installation.user_id = owner_id
        await session.flush()
        return installation

    @staticmethod
    async def upsert_repository(session: AsyncSession, installation_pk: str, repo: RepositoryInfo) -> Repository:
        """
        Insert or update a repository keyed by GitHub's repository id and flag
        it stale. Does not commit.
        """
        result = await session.execute(select(Repository).where(Repository.github_repo_id == repo.id))
        existing = result.scalars().first()
        if existing is not None:
            existing.installation_id = installation_pk
            existing.full_name = repo.full_name
            existing.is_private = repo.private
            if repo.default_branch:
                existing.default_branch = repo.default_branch
            existing.needs_refresh = True
            return existing

        repository = Repository(
            id=generate_id(),
            installation_id=installation_pk,
            github_repo_id=repo.id,
            full_name=repo.full_name,
            is_private=repo.private,
            needs_refresh=True,
        )
        if repo.default_branch:
            repository.default_branch = repo.default_branch
        session.add(repository)
        await session.flush()
        return repository

    @staticmethod
    async def delete_repositories(session: AsyncSession, repository_ids: Iterable[str]) -> int:
        """
        Remove repositories from the catalogue, keeping projects and runs
        that referenced them (their link is cleared). Does not commit.
        """
        ids: List[str] = list(repository_ids)
        if not ids:
            return 0
        await session.execute(update(Project).where(Project.repository_id.in_(ids)).values(repository_id=None))
        await session.execute(update(Run).where(Run.repository_id.in_(ids)).values(repository_id=None))
        result = await session.execute(delete(Repository).where(Repository.id.in_(ids)))
        return result.rowcount

    @staticmethod
    async def delete_installation(session: AsyncSession, installation: Installation) -> None:
        """Delete an installation with its repositories and cached tokens. Does not commit."""
        result = await session.execute(select(Repository.id).where(Repository.installation_id == installation.id))
        await InstallationService.delete_repositories(session, result.scalars().all())
        await session.execute(delete(CachedToken).where(CachedToken.installation_id == installation.id))
        await session.execute(delete(Installation).where(Installation.id == installation.id))

    @staticmethod
    async def link_installations(session: AsyncSession, user: User) -> int:
        """Attach unowned installations made by the user's verified GitHub account."""
        if not user.github_login:
            return 0
        result = await session.execute(
            update(Installation)
            .where(Installation.account_login == user.github_login, Installation.user_id.is_(None))
            .values(user_id=user.id)
        )
        await session.commit()
        return result.rowcount

    @staticmethod
    async def list_for_user(session: AsyncSession, user: User) -> List[Installation]:
        stmt = (
            select(Installation)
            .where(Installation.user_id == user.id)
            .order_by(Installation.created_at.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_owned(session: AsyncSession, user: User, installation_pk: str) -> Installation:
        result = await session.execute(select(Installation).where(Installation.id == installation_pk))
        installation = result.scalars().first()
        if installation is None:
            raise NotFound("Installation not found")
        if installation.user_id != user.id:
            raise Forbidden("Forbidden: You do not own this installation")
        return installation

    @staticmethod
    async def get_owned_repository(session: AsyncSession, user: User, owner: str, repo: str) -> Repository:
        stmt = (
            select(Repository)
            .join(Installation, Installation.id == Repository.installation_id)
            .where(Repository.full_name == f"{owner}/{repo}", Installation.user_id == user.id)
        )
        result = await session.execute(stmt)
        repository = result.scalars().first()
        if repository is None:
            raise Forbidden("Forbidden: You do not own this repository")
        return repository

    @staticmethod
    async def sync_repositories(
        session: AsyncSession,
        installation: Installation,
        vault: CredentialVault,
        github: GitHubAppClient,
    ) -> int:
        """Upsert every repository GitHub says the installation can access."""
        token = await vault.get_token(installation.id)
        repositories = await github.list_installation_repositories(token)
        for data in repositories:
            await InstallationService.upsert_repository(session, installation.id, RepositoryInfo.model_validate(data))
        await session.commit()
        logger.info("Synced %d repositories for installation %s", len(repositories), installation.installation_id)
        return len(repositories)

    @staticmethod
    async def refresh_metadata(
        session: AsyncSession,
        repository: Repository,
        vault: CredentialVault,
        github: GitHubAppClient,
    ) -> Repository:
        """Re-read default branch and language breakdown from GitHub. Does not commit."""
        token = await vault.get_token(repository.installation_id)
        data = await github.get_repository(token, repository.owner, repository.name)
        if data.get("default_branch"):
            repository.default_branch = data["default_branch"]
        if isinstance(data.get("languages"), dict):
            repository.languages = data["languages"]
        repository.is_private = bool(data.get("private", repository.is_private))
        await session.flush()
        return repository

"""Service wiring for FastAPI routes.

Collaborators that touch the outside world (GitHub, git, docker) have their
own providers so tests can replace them with ``app.dependency_overrides``.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.services.credential_vault import CredentialVault
from app.services.git import GitRunner
from app.services.github_app import GitHubAppClient, get_github_client
from app.services.repo_sync import RepositorySyncEngine
from app.services.result_ingestion import ResultIngestionService
from app.services.scan_orchestrator import ScanOrchestrator
from app.services.webhook_router import WebhookEventRouter
from app.services.worker_launcher import DockerWorkerLauncher, WorkerLauncher


def get_git_runner() -> GitRunner:
    return GitRunner(timeout=settings.GIT_TIMEOUT_SECONDS)


def get_worker_launcher() -> WorkerLauncher:
    return DockerWorkerLauncher()


def get_credential_vault(
    session: AsyncSession = Depends(get_db),
    github: GitHubAppClient = Depends(get_github_client),
) -> CredentialVault:
    return CredentialVault(session, github)


def get_sync_engine(
    session: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_credential_vault),
    git: GitRunner = Depends(get_git_runner),
) -> RepositorySyncEngine:
    return RepositorySyncEngine(session, vault, git=git)


def get_scan_orchestrator(
    session: AsyncSession = Depends(get_db),
    sync_engine: RepositorySyncEngine = Depends(get_sync_engine),
    launcher: WorkerLauncher = Depends(get_worker_launcher),
) -> ScanOrchestrator:
    return ScanOrchestrator(session, sync_engine, launcher)


def get_result_ingestion(session: AsyncSession = Depends(get_db)) -> ResultIngestionService:
    return ResultIngestionService(session)


def get_webhook_router(session: AsyncSession = Depends(get_db)) -> WebhookEventRouter:
    return WebhookEventRouter(session)

"""Scan Orchestrator.

Resolves what to scan, records a run, prepares the worker's job descriptor
and launches the worker. Results arrive later through result ingestion.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.database import utcnow
from app.core.exceptions import AppError, Forbidden, NotFound, UpstreamFailure, ValidationFailure
from app.core.scan_config import (
    DEFAULT_LANGUAGES,
    TERMINAL_STATUSES,
    ProjectType,
    RunStatus,
    ScanType,
    TriggerType,
)
from app.core.security import generate_callback_token, generate_id
from app.models.installation import Installation
from app.models.project import Project
from app.models.repository import Repository
from app.models.run import Run
from app.models.user import User
from app.schemas.job import DastConfig, JobDescriptor
from app.services.repo_sync import RepositorySyncEngine, working_copy_relpath
from app.services.worker_launcher import WorkerLauncher

logger = logging.getLogger(__name__)

LOCAL_PROJECTS_DIR = "local-projects"


def to_worker_path(relative_path: str, worker_root: Optional[str] = None) -> str:
    """
    Translate a workspace-relative host path into the worker's path convention.

    The host may use either separator; the worker always sees a POSIX path
    rooted at ``WORKER_WORKSPACE_DIR``, e.g. ``repos\\acme\\api`` becomes
    ``/app/tmp/repos/acme/api``. Parent references are rejected so a path can
    never escape the shared workspace.
    """
    root = worker_root or settings.WORKER_WORKSPACE_DIR
    parts = [p for p in re.split(r"[\\/]+", relative_path) if p not in ("", ".")]
    if ".." in parts:
        raise ValidationFailure("Project path may not contain '..'")
    if parts and re.match(r"^[A-Za-z]:$", parts[0]):
        raise ValidationFailure("Project path must be relative to the workspace")
    return str(PurePosixPath(root, *parts))


def callback_url() -> str:
    return f"{settings.APP_URL.rstrip('/')}/api/v1/scans/results"


@dataclass
class TriggerResult:
    scan_id: str
    status: str
    message: str
    is_cached: bool = False


class ScanOrchestrator:
    def __init__(
        self,
        session: AsyncSession,
        sync_engine: RepositorySyncEngine,
        launcher: WorkerLauncher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._sync = sync_engine
        self._launcher = launcher
        self._clock = clock

    async def resolve_project(self, user: User, project_id: str) -> Project:
        """
        Find the project to scan.

        ``project_id`` may name a project, or a repository that has no wrapper
        project yet, in which case one is created (at most one per repository).

        Raises:
            NotFound: neither a project nor a repository has this id
            Forbidden: the project belongs to another user
        """
        user_id = user.id
        result = await self._session.execute(select(Project).where(Project.id == project_id))
        project = result.scalars().first()
        if project is None:
            project = await self._wrap_repository(user_id, project_id)
        if project is None:
            raise NotFound("Project not found")
        if project.user_id != user_id:
            raise Forbidden("Forbidden")
        return project

    async def _wrap_repository(self, user_id: int, repository_id: str) -> Optional[Project]:
        result = await self._session.execute(
            select(Repository, Installation.user_id)
            .join(Installation, Installation.id == Repository.installation_id)
            .where(Repository.id == repository_id)
        )
        row = result.first()
        if row is None:
            return None
        repository, owner_id = row
        if owner_id != user_id:
            raise Forbidden("Forbidden")

        existing = await self._wrapper_for(repository.id)
        if existing is not None:
            return existing

        wrapper = Project(
            id=generate_id(),
            name=repository.full_name,
            project_type=ProjectType.GITHUB.value,
            repository_id=repository.id,
            user_id=owner_id,
        )
        self._session.add(wrapper)
        try:
            await self._session.commit()
        except IntegrityError:
            # Another request created the wrapper first
            await self._session.rollback()
            return await self._wrapper_for(repository_id)
        logger.info("Created project %s wrapping repository %s", wrapper.id, repository.full_name)
        return wrapper

    async def _wrapper_for(self, repository_id: str) -> Optional[Project]:
        result = await self._session.execute(select(Project).where(Project.repository_id == repository_id))
        return result.scalars().first()

    async def latest_completed_run(self, project_id: str) -> Optional[Run]:
        result = await self._session.execute(
            select(Run)
            .where(Run.project_id == project_id, Run.status == RunStatus.COMPLETED.value)
            .order_by(Run.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def trigger_scan(
        self,
        user: User,
        project_id: str,
        scan_type: ScanType = ScanType.FULL,
        target_url: Optional[str] = None,
        force: bool = False,
    ) -> TriggerResult:
        """
        Start a scan of a project, or return the latest completed one.

        Without ``force`` a project that already has a completed run is not
        scanned again. Otherwise a run is recorded as running and a worker is
        launched; if anything fails before the worker is running the run is
        marked failed and ``UpstreamFailure`` is raised.
        """
        project = await self.resolve_project(user, project_id)

        if not force:
            cached = await self.latest_completed_run(project.id)
            if cached is not None:
                logger.info("Skipping scan of project %s, found completed run %s", project.id, cached.id)
                return TriggerResult(
                    scan_id=cached.id,
                    status=RunStatus.COMPLETED.value,
                    message='Loaded cached scan results. (Use "force" to scan again)',
                    is_cached=True,
                )

        run = Run(
            id=generate_id(),
            project_id=project.id,
            repository_id=project.repository_id,
            trigger_type=TriggerType.MANUAL.value,
            scan_type=ScanType(scan_type).value,
            status=RunStatus.RUNNING.value,
            started_at=self._clock(),
            callback_token=generate_callback_token(),
        )
        self._session.add(run)
        await self._session.commit()
        run_id = run.id

        try:
            job = await self.build_job(project, run, target_url)
            await self._launcher.launch(job)
        except Exception as exc:
            logger.exception("Failed to start scan %s for project %s", run_id, project.id)
            message = exc.message if isinstance(exc, AppError) else str(exc)
            await self.mark_failed(run_id, message or "Failed to start scan")
            raise UpstreamFailure(message or "Failed to start scan", run_id=run_id) from exc

        logger.info("Started scan %s for project %s", run_id, project.id)
        return TriggerResult(scan_id=run_id, status=RunStatus.RUNNING.value, message="Security scan started successfully")

    async def build_job(self, project: Project, run: Run, target_url: Optional[str] = None) -> JobDescriptor:
        languages = list(DEFAULT_LANGUAGES)
        repo_url = None

        if project.project_type == ProjectType.LOCAL.value:
            if not project.local_path:
                raise ValidationFailure("Project record missing path")
            relative_path = f"{LOCAL_PROJECTS_DIR}/{project.local_path}"
        elif project.project_type == ProjectType.GITHUB.value:
            repository = await self._repository_for(project)
            owner, name = repository.owner, repository.name
            await self._sync.ensure_fresh(repository.installation_id, owner, name)
            relative_path = working_copy_relpath(owner, name)
            repo_url = f"https://github.com/{repository.full_name}"
            if isinstance(repository.languages, dict) and repository.languages:
                languages = list(repository.languages.keys())
        else:
            raise ValidationFailure(f"Unknown project type {project.project_type!r}")

        return JobDescriptor(
            run_id=run.id,
            languages=languages,
            frameworks=[],
            dependencies=list(languages),
            is_pr=run.trigger_type == TriggerType.PULL_REQUEST.value,
            changed_files=[],
            callback_url=callback_url(),
            callback_token=run.callback_token,
            repo_path=to_worker_path(relative_path),
            repo_url=repo_url,
            dast=DastConfig(target_url=target_url) if target_url else None,
        )

    async def _repository_for(self, project: Project) -> Repository:
        if project.repository_id is None:
            raise NotFound("Repository for project no longer exists")
        result = await self._session.execute(select(Repository).where(Repository.id == project.repository_id))
        repository = result.scalars().first()
        if repository is None:
            raise NotFound("Repository for project no longer exists")
        return repository

    async def mark_failed(self, run_id: str, message: str) -> None:
        """Move a non-terminal run to failed."""
        await self._session.rollback()
        await self._session.execute(
            update(Run)
            .where(Run.id == run_id, Run.status.not_in(TERMINAL_STATUSES))
            .values(status=RunStatus.FAILED.value, finished_at=self._clock(), error_message=message[:2000])
        )
        await self._session.commit()

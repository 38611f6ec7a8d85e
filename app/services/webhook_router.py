"""Webhook Event Router for GitHub App deliveries.

The signature is checked against the raw body before anything is parsed or
written. Handlers tolerate redelivery: rows are upserted by GitHub ids and
runs are only created when no run for the same trigger exists yet.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.database import utcnow
from app.core.exceptions import Unauthorized, ValidationFailure
from app.core.scan_config import RunStatus, TriggerType
from app.core.security import generate_id, verify_webhook_signature
from app.models.project import Project
from app.models.repository import Repository
from app.models.run import Run
from app.schemas.webhook import (
    InstallationEvent,
    InstallationRepositoriesEvent,
    PullRequestEvent,
    PushEvent,
)
from app.services.installation_service import InstallationService

logger = logging.getLogger(__name__)

PR_ACTIONS = {"opened", "synchronize"}

Handler = Callable[[Dict[str, Any]], Awaitable[None]]


class WebhookEventRouter:
    def __init__(self, session: AsyncSession, secret: Optional[str] = None):
        self._session = session
        self._secret = secret if secret is not None else settings.GITHUB_WEBHOOK_SECRET
        self._handlers: Dict[str, Handler] = {
            "installation": self._handle_installation,
            "installation_repositories": self._handle_installation_repositories,
            "push": self._handle_push,
            "pull_request": self._handle_pull_request,
        }

    async def handle(self, raw_body: bytes, signature: Optional[str], event_type: Optional[str]) -> Dict[str, bool]:
        """
        Authenticate and dispatch one delivery.

        Raises:
            ValidationFailure: signature or event header missing, or body is not a JSON object
            Unauthorized: signature does not match the body
        """
        if not signature or not event_type:
            raise ValidationFailure("Missing headers")
        if not verify_webhook_signature(raw_body, signature, self._secret):
            logger.warning("Rejected %s webhook with invalid signature", event_type)
            raise Unauthorized("Invalid signature")

        try:
            payload = json.loads(raw_body)
        except ValueError as exc:
            raise ValidationFailure("Invalid JSON payload") from exc
        if not isinstance(payload, dict):
            raise ValidationFailure("Invalid JSON payload")

        logger.info("Received GitHub webhook: %s", event_type)
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled event: %s", event_type)
            return {"received": True}

        try:
            await handler(payload)
        except ValidationError as exc:
            await self._session.rollback()
            raise ValidationFailure(f"Malformed {event_type} payload") from exc
        except Exception:
            await self._session.rollback()
            raise
        return {"received": True}

    # --- installation lifecycle ---
    async def _handle_installation(self, payload: Dict[str, Any]) -> None:
        event = InstallationEvent.parse(payload)
        info = event.installation
        logger.info("Installation %s: %s", event.action, info.account.login)

        if event.action == "created":
            installation = await InstallationService.upsert_installation(
                self._session, info.id, info.account.login, info.account.type, event.raw_installation
            )
            for repo in event.repositories:
                await InstallationService.upsert_repository(self._session, installation.id, repo)
            await self._session.commit()
            logger.info("Stored installation %s with %d repositories", info.id, len(event.repositories))
            return

        installation = await InstallationService.get_by_provider_id(self._session, info.id)
        if installation is None:
            logger.info("Installation %s is not known, ignoring %s", info.id, event.action)
            return

        if event.action == "deleted":
            await InstallationService.delete_installation(self._session, installation)
            logger.info("Deleted installation: %s", info.id)
        elif event.action == "suspend":
            installation.suspended_at = utcnow()
            logger.info("Suspended installation: %s", info.id)
        elif event.action == "unsuspend":
            installation.suspended_at = None
            logger.info("Unsuspended installation: %s", info.id)
        else:
            logger.info("Ignoring installation action %s", event.action)
            return
        await self._session.commit()

    async def _handle_installation_repositories(self, payload: Dict[str, Any]) -> None:
        event = InstallationRepositoriesEvent.model_validate(payload)
        installation = await InstallationService.get_by_provider_id(self._session, event.installation.id)
        if installation is None:
            logger.error("Installation not found: %s", event.installation.id)
            return

        if event.action == "added":
            for repo in event.repositories_added:
                await InstallationService.upsert_repository(self._session, installation.id, repo)
            logger.info("Added %d repositories", len(event.repositories_added))
        elif event.action == "removed":
            github_ids = [repo.id for repo in event.repositories_removed]
            result = await self._session.execute(
                select(Repository.id).where(
                    Repository.installation_id == installation.id,
                    Repository.github_repo_id.in_(github_ids),
                )
            )
            removed = await InstallationService.delete_repositories(self._session, result.scalars().all())
            logger.info("Removed %d repositories", removed)
        await self._session.commit()

    # --- source changes ---
    async def _mark_stale(self, github_repo_id: int, pushed: bool = False) -> Optional[Repository]:
        values: Dict[str, Any] = {"needs_refresh": True}
        if pushed:
            values["last_push_at"] = utcnow()
        await self._session.execute(
            update(Repository).where(Repository.github_repo_id == github_repo_id).values(**values)
        )
        result = await self._session.execute(
            select(Repository)
            .where(Repository.github_repo_id == github_repo_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _wrapper_project(self, repository: Repository) -> Optional[Project]:
        result = await self._session.execute(select(Project).where(Project.repository_id == repository.id))
        return result.scalars().first()

    async def _run_exists(self, project_id: str, trigger_type: str, commit_sha: Optional[str], pr_number=None) -> bool:
        stmt = select(Run.id).where(
            Run.project_id == project_id,
            Run.trigger_type == trigger_type,
            Run.commit_sha == commit_sha,
        )
        if pr_number is not None:
            stmt = stmt.where(Run.pr_number == pr_number)
        result = await self._session.execute(stmt.limit(1))
        return result.first() is not None

    async def _handle_push(self, payload: Dict[str, Any]) -> None:
        event = PushEvent.model_validate(payload)
        logger.info("Push to %s: %s", event.repository.full_name, event.ref)
        try:
            await self._record_push(event)
        except Exception:
            # A failed push handler must not fail the delivery
            logger.exception("Error handling push to %s", event.repository.full_name)
            await self._session.rollback()

    async def _record_push(self, event: PushEvent) -> None:
        repository = await self._mark_stale(event.repository.id, pushed=True)
        if repository is None:
            await self._session.commit()
            logger.info("Repository %s is not tracked", event.repository.full_name)
            return

        if event.deleted or event.ref != f"refs/heads/{repository.default_branch}":
            await self._session.commit()
            logger.info("Push to non-default branch %s, marked as stale but not creating run", event.ref)
            return

        project = await self._wrapper_project(repository)
        if project is None or await self._run_exists(project.id, TriggerType.PUSH.value, event.after):
            await self._session.commit()
            return

        self._session.add(
            Run(
                id=generate_id(),
                project_id=project.id,
                repository_id=repository.id,
                trigger_type=TriggerType.PUSH.value,
                git_ref=event.ref,
                commit_sha=event.after,
                status=RunStatus.PENDING.value,
            )
        )
        await self._session.commit()
        logger.info("Created run for push to %s", event.repository.full_name)

    async def _handle_pull_request(self, payload: Dict[str, Any]) -> None:
        event = PullRequestEvent.model_validate(payload)
        if event.action not in PR_ACTIONS:
            return
        logger.info("PR %s: %s #%d", event.action, event.repository.full_name, event.pull_request.number)
        try:
            await self._record_pull_request(event)
        except Exception:
            logger.exception("Error handling pull request %s", event.repository.full_name)
            await self._session.rollback()

    async def _record_pull_request(self, event: PullRequestEvent) -> None:
        repository = await self._mark_stale(event.repository.id)
        project = await self._wrapper_project(repository) if repository is not None else None
        head = event.pull_request.head
        if project is None or await self._run_exists(
            project.id, TriggerType.PULL_REQUEST.value, head.sha, event.pull_request.number
        ):
            await self._session.commit()
            return

        self._session.add(
            Run(
                id=generate_id(),
                project_id=project.id,
                repository_id=repository.id,
                trigger_type=TriggerType.PULL_REQUEST.value,
                git_ref=head.ref,
                commit_sha=head.sha,
                pr_number=event.pull_request.number,
                status=RunStatus.PENDING.value,
            )
        )
        await self._session.commit()
        logger.info("Created run for PR #%d in %s", event.pull_request.number, event.repository.full_name)

"""Data helpers shared by the test modules"""
import json
from typing import Any, Dict, Optional

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import compute_webhook_signature, generate_business_token, generate_id, hash_api_key
from app.models.installation import Installation
from app.models.project import Project
from app.models.repository import Repository
from app.models.user import User


async def create_user(session: AsyncSession, github_login: Optional[str] = None, api_key: str = "user-api-key"):
    """Insert an active user and return it with matching auth headers."""
    business_id = generate_id()[:12]
    user = User(
        business_id=business_id,
        business_name="Test Company",
        github_login=github_login,
        api_key=hash_api_key(api_key),
        business_token=generate_business_token(),
        is_active=True,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    headers = {
        "X-Business-Id": user.business_id,
        "X-Business-Token": user.business_token,
        "X-API-Key": api_key,
    }
    return user, headers


async def create_installation(
    session: AsyncSession, provider_id: int = 1001, login: str = "acme", user: Optional[User] = None
) -> Installation:
    installation = Installation(
        id=generate_id(),
        installation_id=provider_id,
        account_login=login,
        account_type="Organization",
        user_id=user.id if user else None,
    )
    session.add(installation)
    await session.commit()
    return installation


async def create_repository(
    session: AsyncSession,
    installation: Installation,
    full_name: str = "acme/api",
    github_repo_id: int = 5001,
    default_branch: str = "main",
    needs_refresh: bool = True,
) -> Repository:
    repository = Repository(
        id=generate_id(),
        installation_id=installation.id,
        github_repo_id=github_repo_id,
        full_name=full_name,
        is_private=True,
        default_branch=default_branch,
        needs_refresh=needs_refresh,
    )
    session.add(repository)
    await session.commit()
    return repository


async def create_wrapper_project(session: AsyncSession, repository: Repository, user: User) -> Project:
    project = Project(
        id=generate_id(),
        name=repository.full_name,
        project_type="github",
        repository_id=repository.id,
        user_id=user.id,
    )
    session.add(project)
    await session.commit()
    return project


async def post_webhook(client: AsyncClient, event: str, payload: Dict[str, Any], secret: Optional[str] = None):
    """POST a webhook delivery signed the way GitHub signs it."""
    body = json.dumps(payload).encode("utf-8")
    signature = compute_webhook_signature(body, secret or settings.GITHUB_WEBHOOK_SECRET)
    return await client.post(
        "/api/v1/webhooks/github",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Hub-Signature-256": signature,
            "X-GitHub-Event": event,
        },
    )

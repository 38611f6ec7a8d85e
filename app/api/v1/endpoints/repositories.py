"""Repository working copy endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.dependencies.auth import verify_api_credentials
from app.dependencies.services import get_credential_vault, get_sync_engine
from app.models.user import User
from app.schemas.installation import RepositoryRefreshRequest, RepositoryRefreshResponse
from app.services.credential_vault import CredentialVault
from app.services.github_app import GitHubAppClient, get_github_client
from app.services.installation_service import InstallationService
from app.services.repo_sync import RepositorySyncEngine

router = APIRouter(prefix="/repositories", tags=["repositories"])


@router.post("/refresh", response_model=RepositoryRefreshResponse)
async def refresh_repository(
    body: RepositoryRefreshRequest,
    authenticated_user: User = Depends(verify_api_credentials),
    session: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_credential_vault),
    github: GitHubAppClient = Depends(get_github_client),
    sync_engine: RepositorySyncEngine = Depends(get_sync_engine),
) -> RepositoryRefreshResponse:
    """
    Re-read repository metadata from GitHub, then re-sync the working copy
    regardless of its freshness flag.
    """
    repository = await InstallationService.get_owned_repository(session, authenticated_user, body.owner, body.repo)
    await InstallationService.refresh_metadata(session, repository, vault, github)
    await session.commit()
    installation_id = repository.installation_id
    await sync_engine.force_refresh(installation_id, body.owner, body.repo)
    _, commit_sha = await sync_engine.current_state(installation_id, body.owner, body.repo)
    return RepositoryRefreshResponse(commit_sha=commit_sha)

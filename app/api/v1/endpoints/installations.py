"""GitHub App installation endpoints"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.dependencies.auth import verify_api_credentials
from app.dependencies.services import get_credential_vault
from app.models.user import User
from app.schemas.installation import InstallationLinkResponse, InstallationResponse, InstallationSyncResponse
from app.services.credential_vault import CredentialVault
from app.services.github_app import GitHubAppClient, get_github_client
from app.services.installation_service import InstallationService

router = APIRouter(prefix="/installations", tags=["installations"])


@router.get("", response_model=List[InstallationResponse])
async def list_installations(
    authenticated_user: User = Depends(verify_api_credentials),
    session: AsyncSession = Depends(get_db),
):
    return await InstallationService.list_for_user(session, authenticated_user)


@router.post("/link", response_model=InstallationLinkResponse)
async def link_installations(
    authenticated_user: User = Depends(verify_api_credentials),
    session: AsyncSession = Depends(get_db),
) -> InstallationLinkResponse:
    """Claim installations made by the caller's verified GitHub account that have no owner yet."""
    linked = await InstallationService.link_installations(session, authenticated_user)
    return InstallationLinkResponse(linked=linked)


@router.post("/{installation_id}/sync", response_model=InstallationSyncResponse)
async def sync_installation(
    installation_id: str,
    authenticated_user: User = Depends(verify_api_credentials),
    session: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_credential_vault),
    github: GitHubAppClient = Depends(get_github_client),
) -> InstallationSyncResponse:
    """Refresh the repository catalogue of an installation from GitHub."""
    installation = await InstallationService.get_owned(session, authenticated_user, installation_id)
    synced = await InstallationService.sync_repositories(session, installation, vault, github)
    return InstallationSyncResponse(synced=synced)

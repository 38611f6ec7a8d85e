"""User management endpoints"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.dependencies.auth import verify_api_credentials
from app.models.user import User
from app.schemas.user import GitHubVerifyRequest, GitHubVerifyResponse, UserRegisterRequest, UserRegisterResponse
from app.services.github_app import GitHubAppClient, get_github_client
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register/{api_key}", response_model=UserRegisterResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    api_key: str = Path(..., description="Registration API key"),
    body: Optional[UserRegisterRequest] = Body(default=None),
    session: AsyncSession = Depends(get_db),
) -> UserRegisterResponse:
    """
    Register a new user. Returns random business_id and business_token.
    """
    return await UserService.register(session, api_key, body or UserRegisterRequest())


@router.post("/github/verify", response_model=GitHubVerifyResponse)
async def verify_github_identity(
    body: GitHubVerifyRequest,
    authenticated_user: User = Depends(verify_api_credentials),
    session: AsyncSession = Depends(get_db),
    github: GitHubAppClient = Depends(get_github_client),
) -> GitHubVerifyResponse:
    """
    Complete GitHub's OAuth flow for the caller and link the installations
    made by the verified account.
    """
    return await UserService.verify_github_identity(session, authenticated_user, body.code, github)

"""Project endpoints"""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.dependencies.auth import verify_api_credentials
from app.models.user import User
from app.schemas.project import LocalProjectCreate, ProjectResponse
from app.services.project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    authenticated_user: User = Depends(verify_api_credentials),
    session: AsyncSession = Depends(get_db),
):
    return await ProjectService.get_projects_for_user(session, authenticated_user)


@router.post("/local", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_local_project(
    body: LocalProjectCreate,
    authenticated_user: User = Depends(verify_api_credentials),
    session: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    """Register an already extracted project under the local-projects workspace."""
    return await ProjectService.create_local_project(session, authenticated_user, body)

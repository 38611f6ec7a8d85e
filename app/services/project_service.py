"""Project service for managing user projects"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.scan_config import ProjectType
from app.core.security import generate_id
from app.models.project import Project
from app.models.user import User
from app.schemas.project import LocalProjectCreate, ProjectResponse
from app.services.scan_orchestrator import to_worker_path


class ProjectService:
    @staticmethod
    async def create_local_project(session: AsyncSession, user: User, data: LocalProjectCreate) -> ProjectResponse:
        # Validates the path the same way the worker job will see it
        to_worker_path(data.local_path)
        project = Project(
            id=generate_id(),
            name=data.name,
            project_type=ProjectType.LOCAL.value,
            local_path=data.local_path.replace("\\", "/").strip("/"),
            user_id=user.id,
        )
        session.add(project)
        await session.commit()
        await session.refresh(project)
        return ProjectResponse.model_validate(project)

    @staticmethod
    async def get_projects_for_user(session: AsyncSession, user: User):
        stmt = select(Project).where(Project.user_id == user.id).order_by(Project.created_at.desc())
        result = await session.execute(stmt)
        return result.scalars().all()

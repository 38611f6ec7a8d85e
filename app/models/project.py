"""Project SQLAlchemy model"""
from sqlalchemy import Column, String, Integer, ForeignKey, DateTime
from sqlalchemy.orm import relationship

from app.core.database import Base, utcnow


class Project(Base):
    """
    A scannable unit: either an uploaded archive extracted under
    ``local-projects/`` or a wrapper around a GitHub repository.
    Attributes:
        id: uuid string primary key
        project_type: "local" or "github"
        local_path: path relative to the local-projects workspace (local only)
        repository_id: wrapped repository (github only); at most one wrapper per repository
        user_id: owner
    """
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, nullable=False)
    name = Column(String(512), nullable=False)
    project_type = Column(String(16), nullable=False)
    local_path = Column(String(1024), nullable=True)
    repository_id = Column(
        String(36), ForeignKey("github_repositories.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="projects")
    repository = relationship("Repository")

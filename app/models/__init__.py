"""SQLAlchemy models"""
from app.models.user import User
from app.models.installation import Installation, CachedToken
from app.models.repository import Repository
from app.models.project import Project
from app.models.run import Run, Finding

__all__ = ["User", "Installation", "CachedToken", "Repository", "Project", "Run", "Finding"]

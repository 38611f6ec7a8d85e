"""GitHub repository SQLAlchemy model"""
from sqlalchemy import Column, String, Boolean, BigInteger, ForeignKey, DateTime, JSON
from sqlalchemy.orm import relationship

from app.core.database import Base, utcnow
from app.core.scan_config import DEFAULT_BRANCH


class Repository(Base):
    """
    A repository reachable through an installation, and the state of its
    local working copy.

    While ``needs_refresh`` is False the working copy on disk is at
    ``last_commit_sha``. Anything that may invalidate that sets the flag.
    """

    __tablename__ = "github_repositories"

    id = Column(String(36), primary_key=True, nullable=False)
    installation_id = Column(
        String(36), ForeignKey("github_installations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    github_repo_id = Column(BigInteger, unique=True, nullable=False, index=True)
    full_name = Column(String(512), nullable=False, index=True)
    is_private = Column(Boolean, default=True, nullable=False)
    default_branch = Column(String(255), default=DEFAULT_BRANCH, nullable=False)
    languages = Column(JSON, nullable=True)
    needs_refresh = Column(Boolean, default=True, nullable=False)
    last_commit_sha = Column(String(64), nullable=True)
    last_cloned_at = Column(DateTime, nullable=True)
    last_push_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    installation = relationship("Installation", back_populates="repositories")

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.full_name.split("/", 1)[-1]

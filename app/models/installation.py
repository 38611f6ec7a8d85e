"""GitHub App installation and cached access token models"""
from sqlalchemy import Column, String, Integer, BigInteger, ForeignKey, DateTime, JSON, Text
from sqlalchemy.orm import relationship

from app.core.database import Base, utcnow


class Installation(Base):
    """
    A GitHub App installation granted by one account.

    Fields:
    - id: uuid string primary key
    - installation_id: GitHub's installation id (unique)
    - account_login / account_type: the installing account ("User" or "Organization")
    - suspended_at: set while GitHub reports the installation suspended
    - user_id: owning user, linked once that user authenticates
    - provider_metadata: raw installation payload from GitHub
    """

    __tablename__ = "github_installations"

    id = Column(String(36), primary_key=True, nullable=False)
    installation_id = Column(BigInteger, unique=True, nullable=False, index=True)
    account_login = Column(String(255), nullable=False, index=True)
    account_type = Column(String(64), nullable=True)
    suspended_at = Column(DateTime, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    provider_metadata = Column("metadata", JSON, nullable=True)
    installed_at = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="installations")
    repositories = relationship("Repository", back_populates="installation", passive_deletes=True)


class CachedToken(Base):
    """
    Encrypted installation access token.

    Rows are insert-only; the newest unexpired row for an installation is the
    one in use. ``expires_at`` is naive UTC.
    """

    __tablename__ = "github_access_tokens"

    id = Column(String(36), primary_key=True, nullable=False)
    installation_id = Column(
        String(36), ForeignKey("github_installations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_encrypted = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

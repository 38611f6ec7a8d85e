"""User SQLAlchemy model"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship

from app.core.database import Base, utcnow


class User(Base):
    """
    User model representing an API consumer of the scan service.

    Attributes:
        id: Primary key, auto-incrementing integer
        business_id: Unique identifier handed out at registration
        github_login: GitHub account login proven through OAuth, used to link App installations
        api_key: Hashed API key for authentication
        business_token: Token for internal authentication
        is_active: Whether the user is active
        created_at: Timestamp of user creation
        updated_at: Timestamp of last update
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(String(255), unique=True, nullable=False, index=True)
    business_name = Column(String(255), nullable=False)
    github_login = Column(String(255), unique=True, nullable=True, index=True)
    api_key = Column(String(255), nullable=False)
    business_token = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    projects = relationship("Project", back_populates="user", cascade="all, delete-orphan")
    installations = relationship("Installation", back_populates="user")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, business_id={self.business_id}, github_login={self.github_login})>"

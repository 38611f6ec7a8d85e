"""Pydantic schemas for installations and repositories"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class InstallationResponse(BaseModel):
    id: str
    installation_id: int
    account_login: str
    account_type: Optional[str] = None
    installed_at: datetime
    suspended_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InstallationLinkResponse(BaseModel):
    linked: int


class InstallationSyncResponse(BaseModel):
    synced: int


class RepositoryRefreshRequest(BaseModel):
    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)


class RepositoryRefreshResponse(BaseModel):
    success: bool = True
    message: str = "Repository refreshed successfully"
    commit_sha: Optional[str] = None

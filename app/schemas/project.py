"""Pydantic schemas for Project"""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional


class LocalProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=512)
    local_path: str = Field(..., min_length=1, description="Path relative to the local-projects workspace")


class ProjectResponse(BaseModel):
    id: str
    name: str
    project_type: str
    local_path: Optional[str] = None
    repository_id: Optional[str] = None
    user_id: Optional[int] = None
    created_at: datetime

    # Pydantic v2 configuration for ORM conversion from SQLAlchemy objects
    model_config = ConfigDict(from_attributes=True)

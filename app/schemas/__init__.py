"""Pydantic schemas for request/response"""
from app.schemas.user import UserRegisterRequest, UserRegisterResponse
from app.schemas.project import LocalProjectCreate, ProjectResponse
from app.schemas.scan import ScanTriggerRequest, ScanTriggerResponse, ScanDetailResponse
from app.schemas.results import ResultCallback, FindingPayload
from app.schemas.job import JobDescriptor

__all__ = [
    "UserRegisterRequest",
    "UserRegisterResponse",
    "LocalProjectCreate",
    "ProjectResponse",
    "ScanTriggerRequest",
    "ScanTriggerResponse",
    "ScanDetailResponse",
    "ResultCallback",
    "FindingPayload",
    "JobDescriptor",
]

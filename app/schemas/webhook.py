"""GitHub webhook payload schemas (only the fields the handlers read)"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Account(BaseModel):
    login: str
    type: Optional[str] = None


class InstallationInfo(BaseModel):
    id: int
    account: Account


class RepositoryInfo(BaseModel):
    id: int
    full_name: str
    private: bool = False
    default_branch: Optional[str] = None


class InstallationEvent(BaseModel):
    action: str
    installation: InstallationInfo
    repositories: List[RepositoryInfo] = Field(default_factory=list)
    raw_installation: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def parse(cls, payload: Dict[str, Any]) -> "InstallationEvent":
        event = cls.model_validate(payload)
        event.raw_installation = payload.get("installation") or {}
        return event


class InstallationRepositoriesEvent(BaseModel):
    action: str
    installation: InstallationInfo
    repositories_added: List[RepositoryInfo] = Field(default_factory=list)
    repositories_removed: List[RepositoryInfo] = Field(default_factory=list)


class PushEvent(BaseModel):
    ref: str
    after: Optional[str] = None
    deleted: bool = False
    repository: RepositoryInfo


class PullRequestHead(BaseModel):
    ref: str
    sha: str


class PullRequestInfo(BaseModel):
    number: int
    head: PullRequestHead


class PullRequestEvent(BaseModel):
    action: str
    pull_request: PullRequestInfo
    repository: RepositoryInfo

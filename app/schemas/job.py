"""Job descriptor handed to the scan worker"""
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class DastConfig(BaseModel):
    target_url: str


class JobDescriptor(BaseModel):
    """
    Serialized into the worker's ``SCAN_INPUT_JSON`` environment variable.

    ``repo_path`` is expressed in the worker's filesystem convention, not the host's.
    """

    run_id: str
    languages: List[str] = Field(default_factory=list)
    frameworks: List[str] = Field(default_factory=list)
    dependencies: List[Any] = Field(default_factory=list)
    is_pr: bool = False
    changed_files: List[str] = Field(default_factory=list)
    callback_url: str
    callback_token: Optional[str] = None
    repo_path: str
    repo_url: Optional[str] = None
    dast: Optional[DastConfig] = None

    def to_env_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

"""Pydantic schemas for scan requests and responses"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.scan_config import ScanType


class ScanTriggerRequest(BaseModel):
    project_id: str = Field(..., min_length=1, description="Project id, or the id of a repository with no project yet")
    scan_type: ScanType = Field(default=ScanType.FULL, description="full, sast, dast or sca")
    target_url: Optional[str] = Field(default=None, description="Target for dynamic analysis")
    force: bool = Field(default=False, description="Start a new scan even if a completed one exists")


class ScanTriggerResponse(BaseModel):
    success: bool = True
    scan_id: str
    status: str
    message: str
    is_cached: bool = False


class ScanStatusResponse(BaseModel):
    id: str
    project_id: str
    status: str
    trigger_type: str
    scan_type: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    tools_run: List[str] = Field(default_factory=list)
    findings_count: Optional[int] = None
    severity_breakdown: Dict[str, int] = Field(default_factory=dict)
    error_message: Optional[str] = None


class FindingResponse(BaseModel):
    id: str
    run_id: str
    category: str
    tool: str
    rule_id: Optional[str] = None
    title: str
    severity: str
    confidence: str
    file_path: Optional[str] = None
    line_number: int = 0
    fingerprint: str
    evidence: Dict[str, Any] = Field(default_factory=dict)
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("evidence", mode="before")
    @classmethod
    def _evidence(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}


class ScanSummary(BaseModel):
    total: int
    by_category: Dict[str, int]
    by_severity: Dict[str, int]


class ScanResultsResponse(BaseModel):
    run_id: str
    status: str
    tools: List[str]
    findings: List[FindingResponse]
    summary: ScanSummary


class ScanDetailResponse(BaseModel):
    status: ScanStatusResponse
    results: Optional[ScanResultsResponse] = None


class ResultsAcceptedResponse(BaseModel):
    success: bool = True
    message: str = "Results processed successfully"

"""Worker result callback schemas.

The worker evolves independently of this service, so parsing is lenient:
absent or malformed optional fields fall back to defaults instead of failing
the whole callback. Only ``run_id`` is required.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.scan_config import RunStatus

logger = logging.getLogger(__name__)

_STATUS_ALIASES = {
    "completed": RunStatus.COMPLETED.value,
    "complete": RunStatus.COMPLETED.value,
    "success": RunStatus.COMPLETED.value,
    "succeeded": RunStatus.COMPLETED.value,
    "failed": RunStatus.FAILED.value,
    "failure": RunStatus.FAILED.value,
    "error": RunStatus.FAILED.value,
}


class FindingPayload(BaseModel):
    category: str = "UNKNOWN"
    tool: str = "unknown"
    rule_id: Optional[str] = None
    title: str = "Untitled Finding"
    severity: Optional[str] = None
    confidence: str = "UNKNOWN"
    file_path: Optional[str] = None
    line_number: int = 0
    fingerprint: Optional[str] = None
    evidence: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _merge_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # Worker tools report either "file" or "file_path", "line" or "line_number"
        if not data.get("file_path") and data.get("file"):
            data["file_path"] = data["file"]
        if data.get("line_number") in (None, "") and data.get("line") not in (None, ""):
            data["line_number"] = data["line"]
        # Treat explicit nulls and empty strings as "not supplied"
        return {k: v for k, v in data.items() if v is not None and v != ""}

    @field_validator("category", "tool", "title", "confidence", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else str(value)

    @field_validator("rule_id", "severity", "file_path", "fingerprint", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        if isinstance(value, (dict, list)):
            return None
        return str(value)

    @field_validator("line_number", mode="before")
    @classmethod
    def _line(cls, value: Any) -> int:
        try:
            return max(int(value), 0)
        except (TypeError, ValueError):
            return 0

    @field_validator("evidence", mode="before")
    @classmethod
    def _evidence(cls, value: Any) -> Dict[str, Any]:
        if isinstance(value, dict):
            return value
        return {"raw": value}


class ResultCallback(BaseModel):
    run_id: str = Field(..., min_length=1)
    status: str = RunStatus.FAILED.value
    tools: List[str] = Field(default_factory=list)
    findings: List[FindingPayload] = Field(default_factory=list)
    error: Optional[str] = None

    @field_validator("run_id", mode="before")
    @classmethod
    def _run_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> str:
        normalized = _STATUS_ALIASES.get(str(value).strip().lower()) if value is not None else None
        if normalized is None:
            logger.warning("Unrecognized worker status %r, recording run as failed", value)
            return RunStatus.FAILED.value
        return normalized

    @field_validator("tools", mode="before")
    @classmethod
    def _tools(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(tool) for tool in value if tool is not None]

    @field_validator("findings", mode="before")
    @classmethod
    def _findings(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        kept = [item for item in value if isinstance(item, dict)]
        if len(kept) != len(value):
            logger.warning("Dropped %d malformed finding entries", len(value) - len(kept))
        return kept

    @field_validator("error", mode="before")
    @classmethod
    def _error(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

"""Read side of scans: status and findings for the API"""
from collections import Counter
from typing import List

from sqlalchemy import case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.exceptions import Forbidden, NotFound
from app.core.scan_config import SEVERITY_ORDER
from app.models.project import Project
from app.models.run import Finding, Run
from app.models.user import User
from app.schemas.scan import FindingResponse, ScanResultsResponse, ScanStatusResponse, ScanSummary


class ScanService:
    """Service for scan-related reads"""

    @staticmethod
    async def get_run_for_user(session: AsyncSession, user: User, run_id: str) -> Run:
        """
        Load a run the user owns through its project.

        Raises:
            NotFound: no such run
            Forbidden: the run's project belongs to someone else
        """
        result = await session.execute(
            select(Run, Project.user_id).join(Project, Project.id == Run.project_id).where(Run.id == run_id)
        )
        row = result.first()
        if row is None:
            raise NotFound("Scan not found")
        run, owner_id = row
        if owner_id != user.id:
            raise Forbidden("Forbidden: You do not own this scan")
        return run

    @staticmethod
    def to_status(run: Run) -> ScanStatusResponse:
        return ScanStatusResponse(
            id=run.id,
            project_id=run.project_id,
            status=run.status,
            trigger_type=run.trigger_type,
            scan_type=run.scan_type,
            started_at=run.started_at,
            finished_at=run.finished_at,
            tools_run=run.tools_run or [],
            findings_count=run.findings_count,
            severity_breakdown=run.severity_breakdown or {},
            error_message=run.error_message,
        )

    @staticmethod
    async def get_findings(session: AsyncSession, run: Run) -> ScanResultsResponse:
        """Findings ordered CRITICAL, HIGH, MEDIUM, LOW (others last), newest first within a severity."""
        severity_rank = case(
            {severity: rank for rank, severity in enumerate(SEVERITY_ORDER)},
            value=Finding.severity,
            else_=len(SEVERITY_ORDER),
        )
        result = await session.execute(
            select(Finding).where(Finding.run_id == run.id).order_by(severity_rank, Finding.created_at.desc())
        )
        findings: List[FindingResponse] = [
            FindingResponse.model_validate(finding) for finding in result.scalars().all()
        ]
        summary = ScanSummary(
            total=len(findings),
            by_category=dict(Counter(f.category for f in findings)),
            by_severity=dict(Counter(f.severity for f in findings)),
        )
        return ScanResultsResponse(
            run_id=run.id,
            status=run.status,
            tools=run.tools_run or [],
            findings=findings,
            summary=summary,
        )

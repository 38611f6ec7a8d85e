"""Result Ingestion: finalizes a run from the worker's callback."""
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.database import utcnow
from app.core.exceptions import Conflict, NotFound, Unauthorized
from app.core.scan_config import DEFAULT_SEVERITY, TERMINAL_STATUSES, Severity
from app.core.security import generate_id
from app.models.run import Finding, Run
from app.schemas.results import FindingPayload, ResultCallback

logger = logging.getLogger(__name__)


def severity_breakdown(findings: Iterable[FindingPayload]) -> Dict[str, int]:
    """
    Count findings per recognized severity bucket.

    Missing severities and those outside critical/high/medium/low are left
    out of the counts (the findings themselves are still stored, a missing
    severity as LOW).
    """
    breakdown = {severity.value: 0 for severity in Severity}
    for finding in findings:
        if not finding.severity:
            continue
        bucket = finding.severity.strip().lower()
        if bucket in breakdown:
            breakdown[bucket] += 1
    return breakdown


class ResultIngestionService:
    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        require_callback_token: Optional[bool] = None,
    ):
        self._session = session
        self._clock = clock
        self._require_token = (
            settings.REQUIRE_CALLBACK_TOKEN if require_callback_token is None else require_callback_token
        )

    async def process_results(self, payload: ResultCallback, callback_token: Optional[str] = None) -> Run:
        """
        Finalize a run and store its findings.

        Raises:
            NotFound: no run has ``payload.run_id``; the worker and this service disagree
            Conflict: the run was already finalized
            Unauthorized: callback tokens are enforced and the token does not match
        """
        result = await self._session.execute(select(Run).where(Run.id == payload.run_id))
        run = result.scalars().first()
        if run is None:
            logger.error("Received results for unknown run %s", payload.run_id)
            raise NotFound(f"Run {payload.run_id} not found")
        if self._require_token and (not run.callback_token or callback_token != run.callback_token):
            raise Unauthorized("Invalid callback token")
        if run.status in TERMINAL_STATUSES:
            raise Conflict(f"Run {run.id} is already {run.status}")

        breakdown = severity_breakdown(payload.findings)
        values = {
            "status": payload.status,
            "finished_at": self._clock(),
            "tools_run": list(payload.tools),
            "findings_count": len(payload.findings),
            "severity_breakdown": breakdown,
        }
        if payload.error:
            values["error_message"] = payload.error[:2000]

        # Guarded on the status so two racing callbacks cannot both finalize
        finalized = await self._session.execute(
            update(Run)
            .where(Run.id == run.id, Run.status.not_in(TERMINAL_STATUSES))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if finalized.rowcount == 0:
            await self._session.rollback()
            raise Conflict(f"Run {run.id} is already finalized")

        self._session.add_all(self._to_row(run.id, finding) for finding in payload.findings)
        await self._session.commit()
        await self._session.refresh(run)

        logger.info(
            "Run %s finalized as %s with %d findings %s", run.id, payload.status, len(payload.findings), breakdown
        )
        return run

    @staticmethod
    def _to_row(run_id: str, finding: FindingPayload) -> Finding:
        return Finding(
            id=generate_id(),
            run_id=run_id,
            category=finding.category,
            tool=finding.tool,
            rule_id=finding.rule_id,
            title=finding.title,
            severity=finding.severity or DEFAULT_SEVERITY,
            confidence=finding.confidence,
            file_path=finding.file_path,
            line_number=finding.line_number,
            fingerprint=finding.fingerprint or generate_id(),
            evidence=finding.evidence,
            status="open",
        )

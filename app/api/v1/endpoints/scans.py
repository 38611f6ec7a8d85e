"""Scan endpoints: trigger, status and the worker result callback"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import ValidationFailure
from app.core.scan_config import RunStatus
from app.dependencies.auth import verify_api_credentials
from app.dependencies.services import get_result_ingestion, get_scan_orchestrator
from app.models.user import User
from app.schemas.results import ResultCallback
from app.schemas.scan import (
    ResultsAcceptedResponse,
    ScanDetailResponse,
    ScanTriggerRequest,
    ScanTriggerResponse,
)
from app.services.result_ingestion import ResultIngestionService
from app.services.scan_orchestrator import ScanOrchestrator
from app.services.scan_service import ScanService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scans", tags=["scans"])


@router.post("/trigger", response_model=ScanTriggerResponse)
async def trigger_scan(
    scan: ScanTriggerRequest,
    authenticated_user: User = Depends(verify_api_credentials),
    orchestrator: ScanOrchestrator = Depends(get_scan_orchestrator),
) -> ScanTriggerResponse:
    """
    Start a security scan of a project (or of a repository, which gets a project on first use).
    Returns the latest completed scan instead unless ``force`` is set.
    """
    result = await orchestrator.trigger_scan(
        authenticated_user,
        scan.project_id,
        scan_type=scan.scan_type,
        target_url=scan.target_url,
        force=scan.force,
    )
    return ScanTriggerResponse(
        scan_id=result.scan_id,
        status=result.status,
        message=result.message,
        is_cached=result.is_cached,
    )


@router.get("/{scan_id}", response_model=ScanDetailResponse)
async def get_scan(
    scan_id: str,
    authenticated_user: User = Depends(verify_api_credentials),
    session: AsyncSession = Depends(get_db),
) -> ScanDetailResponse:
    """Scan status; findings are included once the scan has completed."""
    run = await ScanService.get_run_for_user(session, authenticated_user, scan_id)
    response = ScanDetailResponse(status=ScanService.to_status(run))
    if run.status == RunStatus.COMPLETED.value:
        response.results = await ScanService.get_findings(session, run)
    return response


@router.post("/results", response_model=ResultsAcceptedResponse)
async def receive_results(
    request: Request,
    callback_token: Optional[str] = Header(None, alias="X-Callback-Token"),
    ingestion: ResultIngestionService = Depends(get_result_ingestion),
) -> ResultsAcceptedResponse:
    """Callback the scan worker POSTs its results to."""
    try:
        body = await request.json()
    except ValueError as exc:
        raise ValidationFailure("Body must be JSON") from exc
    if not isinstance(body, dict) or not body.get("run_id"):
        raise ValidationFailure("run_id is required")

    try:
        payload = ResultCallback.model_validate(body)
    except ValidationError as exc:
        raise ValidationFailure("Malformed results payload") from exc

    logger.info("Received scan results for run_id: %s", payload.run_id)
    await ingestion.process_results(payload, callback_token=callback_token)
    return ResultsAcceptedResponse()

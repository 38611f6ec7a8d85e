"""Inbound GitHub webhook endpoint"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import JSONResponse

from app.core.exceptions import AppError
from app.dependencies.services import get_webhook_router
from app.services.webhook_router import WebhookEventRouter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/github", status_code=status.HTTP_200_OK)
async def github_webhook(
    request: Request,
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_event: Optional[str] = Header(None),
    webhook_router: WebhookEventRouter = Depends(get_webhook_router),
):
    """
    Handle GitHub App webhook deliveries.

    Errors are reported by status code only: 400 missing headers or bad
    payload, 401 bad signature, 500 handler failure (GitHub retries).
    """
    body = await request.body()
    try:
        result = await webhook_router.handle(body, x_hub_signature_256, x_github_event)
    except AppError as exc:
        return Response(status_code=exc.status_code)
    except Exception:
        logger.exception("Webhook error for event %s", x_github_event)
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(result)

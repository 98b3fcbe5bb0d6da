from datetime import datetime, timezone
from typing import Annotated
import logging

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.dependencies import get_payment_service
from app.errors import AuthInvalidError, WebhookPayloadError
from app.schemas import (
    ErrorDetail,
    ErrorKind,
    PaymentStatusResponse,
    StandardErrorResponse,
    WebhookAck,
)
from app.services import PaymentCompletionService, license_scheduler, parse_webhook_event
from app.utils.timezone import to_epoch_millis


logger = logging.getLogger(__name__)

main_router = APIRouter()

SERVICE_NAME = "Live TV Service"
SERVICE_VERSION = "0.1.0"

MAX_DEVICE_ID_LENGTH = 128


def _error_response(status_code: int, code: ErrorKind, message: str, context: dict | None = None) -> JSONResponse:
    body = StandardErrorResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        error=ErrorDetail(code=code, message=message, context=context),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@main_router.get("/")
async def root() -> dict:
    """Root endpoint with service information"""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "endpoints": {
            "webhook": "/api/webhook - Payment provider webhook (POST)",
            "check_payment": "/api/check-payment?deviceId=<id> - Payment status for a device (GET)",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check() -> dict:
    """Health check endpoint"""
    next_run = license_scheduler.get_next_run_time()
    return {
        "status": "ok",
        "license_store": settings.license_store_backend,
        "scheduler_running": license_scheduler.scheduler.running if license_scheduler.scheduler else False,
        "next_license_purge": next_run.isoformat() if next_run else None
    }


@main_router.post("/api/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    service: Annotated[PaymentCompletionService, Depends(get_payment_service)],
    stripe_signature: Annotated[str | None, Header()] = None,
):
    """
    Payment provider webhook

    Verifies the event signature, issues a license for completed checkouts and
    acknowledges every authentic event, whether or not the license email went out.
    """
    payload = await request.body()

    try:
        event = parse_webhook_event(
            payload,
            stripe_signature,
            settings.stripe_webhook_secret,
            settings.stripe_signature_tolerance_sec,
        )
    except AuthInvalidError as e:
        logger.warning(f"Rejected webhook: {e}")
        return _error_response(400, ErrorKind.AUTH_INVALID, str(e))
    except WebhookPayloadError as e:
        logger.warning(f"Rejected webhook: {e}")
        return _error_response(400, ErrorKind.VALIDATION_ERROR, str(e))

    logger.info(f"Webhook received: {event.type}")
    await service.handle_event(event)

    return WebhookAck()


@main_router.get(
    "/api/check-payment",
    response_model=PaymentStatusResponse,
    response_model_exclude_none=True,
)
async def check_payment(
    service: Annotated[PaymentCompletionService, Depends(get_payment_service)],
    device_id: Annotated[str | None, Query(alias="deviceId", max_length=MAX_DEVICE_ID_LENGTH)] = None,
):
    """
    Payment status for a device

    Polled by clients after completing a purchase in an external browser.
    """
    if not device_id or not device_id.strip():
        return _error_response(400, ErrorKind.VALIDATION_ERROR, "Device ID is required")

    status = await service.check_payment(device_id.strip())

    return PaymentStatusResponse(
        paid=status.paid,
        license_key=status.license_key,
        timestamp=to_epoch_millis(status.issued_at) if status.issued_at else None,
    )

import logging

import stripe
from pydantic import ValidationError

from app.errors import AuthInvalidError, WebhookPayloadError
from app.schemas import WebhookEvent


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"


def parse_webhook_event(
    payload: bytes,
    signature: str | None,
    secret: str | None,
    tolerance: int = 300,
) -> WebhookEvent:
    """
    Verify and parse a payment provider webhook

    Signature verification is delegated to the Stripe SDK. When no secret is
    configured the payload is accepted unverified (development mode).

    Args:
        payload: Raw request body, exactly as received
        signature: Value of the Stripe-Signature header
        secret: Webhook signing secret
        tolerance: Maximum accepted age of the signed timestamp, in seconds

    Returns:
        Parsed webhook event

    Raises:
        AuthInvalidError: If the signature is missing, invalid or too old
        WebhookPayloadError: If the body is not a valid event envelope
    """
    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise WebhookPayloadError("Webhook payload is not valid UTF-8") from e

    if secret:
        if not signature:
            raise AuthInvalidError(f"Missing {SIGNATURE_HEADER} header")
        try:
            stripe.WebhookSignature.verify_header(body, signature, secret, tolerance)
        except stripe.SignatureVerificationError as e:
            raise AuthInvalidError(f"Webhook signature verification failed: {e}") from e
    else:
        logger.debug("Webhook secret not configured, skipping signature verification")

    try:
        return WebhookEvent.model_validate_json(body)
    except ValidationError as e:
        raise WebhookPayloadError(f"Invalid webhook payload: {e.error_count()} errors") from e

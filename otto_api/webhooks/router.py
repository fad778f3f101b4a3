"""GitHub webhook receiver.

The endpoint is public (GitHub cannot send a bearer token) and is
protected by the X-Hub-Signature-256 HMAC instead. The order of
operations matters: the signature is checked against the raw body before
the body is parsed, and nothing is dispatched for a delivery that fails
either step.

Once a delivery is authentic and well-formed the response is always 200,
whatever happens to individual projects downstream. GitHub disables hooks
that keep answering with errors.
"""

import json
import logging

from fastapi import APIRouter, Depends, Header, Request

from otto_api.core.config import Settings, get_app_settings
from otto_api.core.errors import error_response
from otto_api.core.middleware import bind_delivery_id, reset_delivery_id
from otto_api.github.webhooks import verify_signature
from otto_api.webhooks.dispatcher import WebhookEventDispatcher
from otto_api.webhooks.schemas import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_event_dispatcher(request: Request) -> WebhookEventDispatcher:
    return request.app.state.event_dispatcher


@router.get("/github", response_model=WebhookAck)
async def webhook_status() -> WebhookAck:
    return WebhookAck(ok=True, message="GitHub webhook endpoint is ready")


@router.post("/github", response_model=WebhookAck)
async def receive_github_webhook(
    request: Request,
    x_github_event: str = Header(default=""),
    x_github_delivery: str = Header(default=""),
    x_hub_signature_256: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    dispatcher: WebhookEventDispatcher = Depends(get_event_dispatcher),
):
    token = bind_delivery_id(x_github_delivery)
    try:
        logger.info(
            "Received webhook: event=%s delivery=%s signed=%s",
            x_github_event or "<none>", x_github_delivery or "<none>",
            x_hub_signature_256 is not None,
        )

        raw_body = await request.body()

        if x_hub_signature_256 is not None:
            if not verify_signature(
                raw_body,
                x_hub_signature_256,
                settings.github_webhook_secret.encode("utf-8"),
            ):
                logger.warning("Webhook signature verification failed")
                return error_response("Invalid signature", 401)
        elif settings.require_webhook_signature:
            logger.warning("Unsigned webhook rejected")
            return error_response("Invalid signature", 401)

        try:
            payload = json.loads(raw_body)
        except ValueError as exc:
            logger.warning("Failed to parse webhook payload: %s", exc)
            return error_response("Invalid JSON payload", 400)
        if not isinstance(payload, dict):
            logger.warning("Webhook payload is not a JSON object")
            return error_response("Invalid JSON payload", 400)

        outcome = await dispatcher.dispatch(x_github_event, payload)
        logger.info(
            "Webhook processed: event=%s action=%s",
            outcome.event_type or "<none>", outcome.action,
        )
        return WebhookAck(ok=True, message="Webhook processed successfully")
    finally:
        reset_delivery_id(token)

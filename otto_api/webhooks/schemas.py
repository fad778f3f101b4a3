"""Pydantic schemas for the webhook receiver."""

from pydantic import BaseModel


class WebhookAck(BaseModel):
    """Acknowledgement returned to GitHub for every accepted delivery."""

    ok: bool
    message: str

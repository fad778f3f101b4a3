"""GitHub webhook signing and payload parsing.

Signature verification uses HMAC-SHA256 as specified by GitHub:
https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries

The digest is always computed over the raw request body exactly as it was
received. Re-serialising the parsed JSON does not reproduce the bytes the
sender signed. The webhook secret must never be logged.
"""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Any, Optional

SIGNATURE_PREFIX = "sha256="
BRANCH_REF_PREFIX = "refs/heads/"


def compute_signature(raw_body: bytes, secret: bytes) -> str:
    """Return the ``sha256=<hex>`` digest GitHub sends in X-Hub-Signature-256."""
    digest = hmac.new(secret, raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(raw_body: bytes, claimed_signature: str, secret: bytes) -> bool:
    """Check a claimed X-Hub-Signature-256 value against the raw body.

    Fails closed: an empty secret, signature or body yields False. Never
    raises for malformed input.
    """
    if not secret or not claimed_signature or not raw_body:
        return False

    expected = compute_signature(raw_body, secret)
    # compare_digest on str rejects non-ASCII input with TypeError; compare bytes.
    return hmac.compare_digest(
        expected.encode("utf-8"),
        claimed_signature.encode("utf-8", errors="replace"),
    )


@dataclass(frozen=True)
class PushEvent:
    """The parts of a GitHub push payload the build dispatcher needs."""

    repository_full_name: str
    owner: str
    repo_name: str
    installation_id: int
    ref: str
    pushed_branch: str
    commit_sha: str
    commit_message: str
    pusher_name: str


def branch_from_ref(ref: str) -> str:
    """Strip ``refs/heads/``; other ref forms (tags) are returned unchanged."""
    return ref.removeprefix(BRANCH_REF_PREFIX)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _field(payload: dict[str, Any], obj: str, key: str) -> str:
    # Optional nested fields; a malformed object reads as empty.
    container = payload.get(obj)
    return _text(container.get(key)) if isinstance(container, dict) else ""


def _installation_id(payload: dict[str, Any]) -> Optional[int]:
    # App deliveries carry the installation at the top level; some proxies
    # nest it under the repository instead.
    installation = payload.get("installation") or (payload.get("repository") or {}).get(
        "installation"
    )
    if not isinstance(installation, dict):
        return None
    raw = installation.get("id")
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def parse_push_event(payload: dict[str, Any]) -> tuple[Optional[PushEvent], str]:
    """Extract a PushEvent from a push payload.

    Returns ``(event, "")`` on success or ``(None, reason)`` when the payload
    is missing the repository name or installation, or the name is not of
    the form ``owner/repo``.
    """
    repository = payload.get("repository") or {}
    full_name = repository.get("full_name") if isinstance(repository, dict) else None
    if not full_name or not isinstance(full_name, str):
        return None, "missing repository.full_name"

    installation_id = _installation_id(payload)
    if installation_id is None:
        return None, "missing installation.id"

    owner, _, repo_name = full_name.partition("/")
    if not owner or not repo_name:
        return None, f"invalid repository name {full_name!r}"

    ref = _text(payload.get("ref"))

    return (
        PushEvent(
            repository_full_name=full_name,
            owner=owner,
            repo_name=repo_name,
            installation_id=installation_id,
            ref=ref,
            pushed_branch=branch_from_ref(ref),
            commit_sha=_text(payload.get("after")),
            commit_message=_field(payload, "head_commit", "message"),
            pusher_name=_field(payload, "pusher", "name"),
        ),
        "",
    )

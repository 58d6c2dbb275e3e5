"""Mercado Pago webhook signature verification.

The x-signature header looks like ``ts=1704908010,v1=<hex>``. The signed
manifest is ``id:<data.id>;request-id:<x-request-id>;ts:<ts>;`` and v1 is
its HMAC-SHA256 under the webhook secret.
"""

import hashlib
import hmac


def parse_signature_header(x_signature: str) -> tuple[str, str] | None:
    """Extract (ts, v1) from an x-signature header.

    Returns:
        The pair, or None if either part is missing.
    """
    parts: dict[str, str] = {}
    for item in x_signature.split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    ts = parts.get("ts")
    v1 = parts.get("v1")
    if not ts or not v1:
        return None
    return ts, v1


def build_manifest(*, data_id: str, request_id: str, ts: str) -> str:
    """Build the string Mercado Pago signs.

    Alphanumeric ids are signed lowercased.
    """
    return f"id:{data_id.lower()};request-id:{request_id};ts:{ts};"


def sign_manifest(manifest: str, secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def verify_webhook_signature(
    *,
    x_signature: str,
    x_request_id: str,
    data_id: str,
    secret: str,
) -> bool:
    """Check a webhook notification came from Mercado Pago.

    Args:
        x_signature: Raw x-signature header.
        x_request_id: Raw x-request-id header.
        data_id: Payment id from the notification.
        secret: Webhook secret configured in the Mercado Pago dashboard.

    Returns:
        True only if the v1 signature matches. An empty secret never
        verifies.
    """
    if not secret:
        return False
    parsed = parse_signature_header(x_signature)
    if parsed is None:
        return False
    ts, received = parsed
    manifest = build_manifest(data_id=data_id, request_id=x_request_id, ts=ts)
    expected = sign_manifest(manifest, secret)
    return hmac.compare_digest(expected, received.lower())

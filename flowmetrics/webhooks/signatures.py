import hashlib
import hmac

from flowmetrics.config import settings
from flowmetrics.webhooks.errors import InvalidSignatureError

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(raw_body: bytes, header: str | None, secret: str) -> None:
    """Check an ``X-Hub-Signature-256`` style header against the raw request body.

    Raises InvalidSignatureError when the header is absent, badly formed or
    does not match. Callers skip verification entirely when no secret is set.
    """
    if not header or not header.startswith(SIGNATURE_PREFIX):
        raise InvalidSignatureError("Missing or malformed signature header")
    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected, header):
        raise InvalidSignatureError("Signature mismatch")


def hash_identity(identifier: str | None, key: str | None = None) -> str | None:
    """One-way pseudonym for a person identifier (login, account id, email)."""
    if not identifier:
        return None
    key = settings.IDENTITY_HMAC_KEY if key is None else key
    if key:
        return hmac.new(key.encode(), identifier.encode(), hashlib.sha256).hexdigest()
    return hashlib.sha256(identifier.encode()).hexdigest()

"""GitHub webhook signature verification (HMAC-SHA1, ``X-Hub-Signature``)."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha1="


class SignatureError(Exception):
    """Raised when a webhook signature is missing or does not match."""


def sign(secret: bytes, body: bytes) -> str:
    """Return the ``sha1=<hex>`` signature GitHub sends for *body*."""
    digest = hmac.new(secret, msg=body, digestmod=hashlib.sha1).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(secret: bytes, body: bytes, header: str | None) -> None:
    """Check *header* against the HMAC-SHA1 of the raw request *body*.

    The MAC is computed over the exact bytes received and compared in
    constant time. Error messages never include the expected signature.

    Raises:
        SignatureError: If the header is missing or does not match.
    """
    if not header:
        raise SignatureError("missing X-Hub-Signature header")
    expected = sign(secret, body)
    if not hmac.compare_digest(expected.encode("ascii"), header.encode("utf-8")):
        raise SignatureError("invalid X-Hub-Signature header")

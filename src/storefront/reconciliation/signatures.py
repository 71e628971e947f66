"""ShipStation webhook authentication: HMAC-SHA256 over the raw request body."""

import base64
import binascii
import hashlib
import hmac
import re
from collections.abc import Mapping

SIGNATURE_HEADERS = ("x-shipstation-hmac-sha256", "x-shipstation-signature")

_HEX = re.compile(r"^[0-9a-fA-F]+$")


def signature_headers(headers: Mapping[str, str]) -> list[str]:
    """Non-empty signature header values, matched case-insensitively by name."""
    values = []
    for name, value in (headers or {}).items():
        if name.lower() in SIGNATURE_HEADERS and isinstance(value, str) and value.strip():
            values.append(value.strip())
    return values


def _decodings(signature: str) -> list[bytes]:
    candidates = []
    try:
        decoded = base64.b64decode(signature, validate=True)
        if decoded:
            candidates.append(decoded)
    except (binascii.Error, ValueError):
        pass
    if _HEX.match(signature) and len(signature) % 2 == 0:
        candidates.append(bytes.fromhex(signature))
    return candidates


def verify_hmac_signature(raw_body: bytes, secret: str, headers: Mapping[str, str]) -> bool:
    """True when any signature header matches the body's HMAC-SHA256 digest.

    Each header value is tried both as base64 and as hex, and compared in
    constant time.
    """
    if not secret or not raw_body:
        return False
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")

    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    for signature in signature_headers(headers):
        for candidate in _decodings(signature):
            if len(candidate) == len(digest) and hmac.compare_digest(candidate, digest):
                return True
    return False

"""Body signing and compression helpers used on both ends of the report channel."""

from __future__ import annotations

import gzip
import hashlib
import hmac

SIGNATURE_HEADER = "HashSHA256"


def sign_body(key: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of ``body`` under the shared secret ``key``."""
    return hmac.new(key.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(key: str, body: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_body(key, body), signature.strip().lower())


def compress(body: bytes) -> bytes:
    return gzip.compress(body)


def decompress(body: bytes) -> bytes:
    return gzip.decompress(body)

"""
Upstream request signing

The Marvel API authenticates server-side calls with a public key, a timestamp
and md5(ts + private_key + public_key). Fetch code only sees the
RequestSigner protocol so the digest can change without touching it.
"""
import hashlib
from typing import Dict, Optional, Protocol

from comic_catalog.core.config import settings


class RequestSigner(Protocol):
    def sign(self, timestamp: str) -> Dict[str, str]:
        """Return the query parameters that authenticate a request made at `timestamp`."""
        ...


class MarvelRequestSigner:
    """Signs requests with the apikey/ts/hash triple the Marvel gateway expects."""

    def __init__(self, public_key: Optional[str] = None, private_key: Optional[str] = None):
        self.public_key = public_key if public_key is not None else settings.MARVEL_PUBLIC_KEY
        self.private_key = private_key if private_key is not None else settings.MARVEL_PRIVATE_KEY

    def sign(self, timestamp: str) -> Dict[str, str]:
        digest = hashlib.md5(
            f"{timestamp}{self.private_key}{self.public_key}".encode()
        ).hexdigest()
        return {
            "apikey": self.public_key,
            "ts": timestamp,
            "hash": digest,
        }

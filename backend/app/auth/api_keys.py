"""API key generation and hashing.

Only the SHA-256 digest of a key is stored; the plaintext is shown to the
caller once at creation time.
"""

import hashlib
import secrets


def generate_api_key() -> str:
    """Generate a new 64-character hex API key."""
    return secrets.token_hex(32)


def hash_api_key(api_key: str) -> str:
    """Digest used for storage and equality lookup."""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()

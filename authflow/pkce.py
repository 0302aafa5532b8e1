"""Random state and PKCE (Proof Key for Code Exchange) helpers.

RFC 7636 - Proof Key for Code Exchange for OAuth 2.0 public clients.
Uses S256 challenge method (SHA-256 hash of the code verifier).
"""

from __future__ import annotations

import hashlib
import secrets

from base64 import urlsafe_b64encode
from dataclasses import dataclass


def base64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url text."""
    return urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_state(length: int = 32) -> str:
    """Generate an opaque anti-forgery ``state`` value.

    Parameters
    ----------
    length : int
        Number of random bytes (default 32).

    Returns
    -------
    str
        URL-safe encoding of the random bytes.
    """
    return base64url_encode(secrets.token_bytes(length))


@dataclass(frozen=True)
class PKCEChallenge:
    """PKCE code verifier and challenge pair.

    Attributes
    ----------
    verifier : str
        The code verifier (high-entropy random string, never sent in the
        authorize request).
    challenge : str
        The code challenge (base64url-encoded SHA-256 hash of verifier).
    method : str
        The challenge method, always "S256".
    """

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = 32) -> PKCEChallenge:
        """Generate a new PKCE code verifier and challenge.

        Parameters
        ----------
        length : int
            Number of random bytes for the verifier (default 32, which
            encodes to the 43 characters RFC 7636 requires at minimum).

        Returns
        -------
        PKCEChallenge
            A new PKCE challenge pair.
        """
        return cls.from_verifier(generate_state(length))

    @classmethod
    def from_verifier(cls, verifier: str) -> PKCEChallenge:
        """Derive the S256 challenge for an existing verifier."""
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        return cls(verifier=verifier, challenge=base64url_encode(digest))

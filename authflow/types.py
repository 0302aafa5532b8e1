"""Type definitions for authflow.

Result values shared by grants, sessions and the flow orchestrator.
"""

from __future__ import annotations

import time

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, cast

from .exceptions import AuthenticationError, AuthFlowCancelled, InvalidResponseError


@dataclass(frozen=True)
class Credentials:
    """Tokens obtained from a successful authorization.

    Attributes
    ----------
    access_token : str
        The access token for API requests.
    token_type : str
        Token type, typically "Bearer".
    id_token : str or None
        Optional OIDC ID token (JWT).
    refresh_token : str or None
        Optional refresh token.
    expires_in : int or None
        Token lifetime in seconds from issuance.
    scope : str or None
        Space-separated list of granted scopes.
    raw : dict[str, Any]
        The values the credentials were built from.
    issued_at : float
        Unix timestamp when the credentials were built.
    """

    access_token: str
    token_type: str = "Bearer"  # noqa: S105
    id_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)
    issued_at: float = field(default_factory=time.time)

    @classmethod
    def from_response(cls, values: Mapping[str, Any]) -> Credentials:
        """Build credentials from a token response or redirect values.

        Parameters
        ----------
        values : Mapping[str, Any]
            Either the JSON body of a token response or the parsed
            redirect parameters of an implicit grant.

        Returns
        -------
        Credentials
            The parsed credentials.

        Raises
        ------
        InvalidResponseError
            If ``access_token`` is missing or ``expires_in`` is not numeric.
        """
        access_token = values.get("access_token")
        if not access_token:
            msg = "Response is missing 'access_token'"
            raise InvalidResponseError(msg, raw_payload=repr(dict(values)).encode("utf-8"))

        expires_in = values.get("expires_in")
        if expires_in is not None:
            try:
                expires_in = int(expires_in)
            except (TypeError, ValueError) as exc:
                msg = f"Invalid 'expires_in' value: {expires_in!r}"
                raise InvalidResponseError(
                    msg, raw_payload=repr(dict(values)).encode("utf-8")
                ) from exc

        return cls(
            access_token=str(access_token),
            token_type=str(values.get("token_type") or "Bearer"),
            id_token=values.get("id_token"),
            refresh_token=values.get("refresh_token"),
            expires_in=expires_in,
            scope=values.get("scope"),
            raw=dict(values),
        )

    @property
    def expires_at(self) -> float | None:
        """Get the expiry timestamp, or None if no expiry."""
        if self.expires_in is None:
            return None
        return self.issued_at + self.expires_in


@dataclass(frozen=True)
class AuthResult:
    """Terminal outcome of an authorization flow.

    Exactly one of ``credentials`` and ``error`` is set.

    Attributes
    ----------
    credentials : Credentials or None
        The credentials if authorization succeeded.
    error : AuthenticationError or None
        The failure if authorization did not succeed.
    """

    credentials: Credentials | None = None
    error: AuthenticationError | None = None

    def __post_init__(self) -> None:
        """Check that exactly one outcome is present."""
        if (self.credentials is None) == (self.error is None):
            msg = "AuthResult requires exactly one of credentials or error"
            raise ValueError(msg)

    @classmethod
    def succeeded(cls, credentials: Credentials) -> AuthResult:
        """Build a successful result."""
        return cls(credentials=credentials)

    @classmethod
    def failed(cls, error: AuthenticationError) -> AuthResult:
        """Build a failed result."""
        return cls(error=error)

    @property
    def success(self) -> bool:
        """Whether the flow produced credentials."""
        return self.credentials is not None

    @property
    def cancelled(self) -> bool:
        """Whether the flow ended by cancellation."""
        return isinstance(self.error, AuthFlowCancelled)

    def unwrap(self) -> Credentials:
        """Return the credentials or raise the delivered error.

        Raises
        ------
        AuthenticationError
            The error carried by a failed result.
        """
        if self.error is not None:
            raise self.error
        return cast("Credentials", self.credentials)


#: Single-use completion callback of a flow.
AuthCallback = Callable[[AuthResult], None]


class SessionStatus(str, Enum):
    """Lifecycle state of an OAuth2 session."""

    ACTIVE = "active"
    RESOLVED = "resolved"

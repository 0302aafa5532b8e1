"""OAuth2 grant strategies.

A grant decides which parameters the authorize request carries and how
the values of the redirect callback become ``Credentials``.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import (
    InvalidResponseError,
    RequestFailedError,
    ServerResponseError,
)
from .pkce import PKCEChallenge
from .types import Credentials
from .urls import build_token_url


if TYPE_CHECKING:
    from collections.abc import Mapping


logger = logging.getLogger("authflow.grants")


class OAuth2Grant(ABC):
    """Abstract base class for OAuth2 grant strategies."""

    @property
    @abstractmethod
    def defaults(self) -> dict[str, str]:
        """Authorize URL parameters this grant requires."""

    @abstractmethod
    async def exchange(self, values: Mapping[str, str]) -> Credentials:
        """Turn redirect callback values into credentials.

        Parameters
        ----------
        values : Mapping[str, str]
            Parameters parsed from the redirect URL.

        Returns
        -------
        Credentials
            The credentials of the authorized user.

        Raises
        ------
        AuthenticationError
            If the values or the token endpoint response are unusable.
        """


class ImplicitGrant(OAuth2Grant):
    """Implicit grant: tokens arrive directly in the redirect fragment."""

    @property
    def defaults(self) -> dict[str, str]:
        return {"response_type": "token"}

    async def exchange(self, values: Mapping[str, str]) -> Credentials:
        return Credentials.from_response(values)


class PKCEGrant(OAuth2Grant):
    """Authorization code grant with PKCE.

    The verifier is generated at construction and only ever sent to the
    token endpoint; the authorize request carries its S256 challenge.

    Parameters
    ----------
    client_id : str
        The OAuth2 client ID.
    issuer_url : str
        Base URL of the authorization server.
    redirect_uri : str
        The redirect URI used in the authorize request.
    challenge : PKCEChallenge, optional
        Verifier/challenge pair; generated when omitted.
    client : httpx.AsyncClient, optional
        Client used for the token request. A short-lived client is
        created per exchange when omitted.
    timeout : float
        Token request timeout in seconds (default ``30``).
    """

    def __init__(
        self,
        client_id: str,
        issuer_url: str,
        redirect_uri: str,
        challenge: PKCEChallenge | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the PKCE grant."""
        self.client_id = client_id
        self.issuer_url = issuer_url
        self.redirect_uri = redirect_uri
        self.challenge = challenge or PKCEChallenge.generate()
        self.client = client
        self.timeout = timeout

    @property
    def code_verifier(self) -> str:
        """The secret PKCE code verifier."""
        return self.challenge.verifier

    @property
    def token_url(self) -> str:
        """The token endpoint the code is exchanged at."""
        return build_token_url(self.issuer_url)

    @property
    def defaults(self) -> dict[str, str]:
        return {
            "response_type": "code",
            "code_challenge": self.challenge.challenge,
            "code_challenge_method": self.challenge.method,
        }

    async def exchange(self, values: Mapping[str, str]) -> Credentials:
        code = values.get("code")
        if not code:
            msg = "No authorization code in callback"
            raise InvalidResponseError(msg, raw_payload=repr(dict(values)).encode("utf-8"))

        data = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "code": code,
            "code_verifier": self.code_verifier,
            "redirect_uri": self.redirect_uri,
        }
        logger.debug("Exchanging authorization code at %s", self.token_url)

        try:
            if self.client is not None:
                resp = await self._post(self.client, data)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await self._post(client, data)
        except httpx.HTTPError as exc:
            msg = f"Token exchange request failed: {exc}"
            raise RequestFailedError(msg, cause=exc) from exc

        return self._parse_token_response(resp)

    async def _post(self, client: httpx.AsyncClient, data: dict[str, str]) -> httpx.Response:
        return await client.post(
            self.token_url,
            data=data,
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )

    @staticmethod
    def _parse_token_response(resp: httpx.Response) -> Credentials:
        """Map a token endpoint response to credentials or an error."""
        try:
            body: Any = resp.json()
        except ValueError as exc:
            msg = f"Token endpoint returned a non-JSON response (status {resp.status_code})"
            raise InvalidResponseError(msg, raw_payload=resp.content) from exc

        if not isinstance(body, dict):
            msg = "Token endpoint returned an unexpected JSON document"
            raise InvalidResponseError(msg, raw_payload=resp.content)

        if resp.is_success:
            return Credentials.from_response(body)

        code = body.get("error") or body.get("code")
        if not code:
            msg = f"Token exchange failed with status {resp.status_code}"
            raise InvalidResponseError(msg, raw_payload=resp.content)

        description = body.get("error_description") or body.get("description") or ""
        known = {"error", "code", "error_description", "description", "name"}
        extras = {k: v for k, v in body.items() if k not in known}
        logger.warning("Token exchange rejected: %s (%s)", code, description)
        msg = f"Token exchange failed: {description or code}"
        raise ServerResponseError(
            msg,
            code=str(code),
            description=str(description),
            name=body.get("name"),
            extras=extras,
        )

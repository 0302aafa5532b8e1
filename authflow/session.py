"""In-flight OAuth2 authorization session.

An ``OAuth2Session`` owns one authorization flow between opening the
authorize page and the terminal outcome. It claims redirect URLs that
start with its redirect URI, checks the anti-forgery ``state`` and hands
the callback values to its grant. Its completion callback runs at most
once, whichever of resume, cancel or replacement happens first.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import secrets

from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, urlsplit

from .dispatch import ImmediateDispatcher
from .exceptions import (
    AuthenticationError,
    AuthFlowCancelled,
    InvalidResponseError,
    RequestFailedError,
    ServerResponseError,
)
from .log import redact_sensitive_data
from .types import AuthResult, SessionStatus


if TYPE_CHECKING:
    from collections.abc import Mapping
    from concurrent.futures import Future

    from .dispatch import Dispatcher
    from .grants import OAuth2Grant
    from .types import AuthCallback, Credentials


logger = logging.getLogger("authflow.session")


def parse_redirect_values(url: str) -> dict[str, str]:
    """Extract the callback parameters of a redirect URL.

    The fragment is used when the URL has one (implicit grants return
    tokens there), otherwise the query string. Repeated keys keep the
    last value.

    Parameters
    ----------
    url : str
        The redirect URL.

    Returns
    -------
    dict[str, str]
        Flat key/value map of the percent-decoded parameters.

    Raises
    ------
    ValueError
        If the URL or its parameters cannot be decoded.
    """
    parts = urlsplit(url)
    raw = url.split("#", 1)[1] if "#" in url else parts.query
    return dict(parse_qsl(raw, keep_blank_values=True, errors="strict"))


class OAuth2Session:
    """One outstanding authorization flow.

    Sessions compare by identity.

    Parameters
    ----------
    redirect_url : str
        Prefix of the redirect URLs this session claims.
    grant : OAuth2Grant
        Strategy that turns callback values into credentials.
    finish : callable
        Completion callback, invoked with one ``AuthResult`` at most once.
    expected_state : str, optional
        Anti-forgery value the redirect must echo; None disables the check.
    dispatcher : Dispatcher, optional
        Runs the grant exchange; defaults to ``ImmediateDispatcher``.
    browser_label : str, optional
        Non-owning handle of the page presenting the authorize URL.
    """

    def __init__(
        self,
        redirect_url: str,
        grant: OAuth2Grant,
        finish: AuthCallback,
        expected_state: str | None = None,
        dispatcher: Dispatcher | None = None,
        browser_label: str | None = None,
    ) -> None:
        """Initialize the session."""
        self.redirect_url = redirect_url
        self.grant = grant
        self.expected_state = expected_state
        self.dispatcher = dispatcher or ImmediateDispatcher()
        self.browser_label = browser_label
        self.flow_id = secrets.token_urlsafe(8)
        self._finish: AuthCallback | None = finish
        self._status = SessionStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<OAuth2Session {self.flow_id} {self._status.value}>"

    @property
    def status(self) -> SessionStatus:
        """Current lifecycle state of the session."""
        return self._status

    def resume(self, url: str, options: Mapping[str, Any] | None = None) -> bool:
        """Try to complete the session from a redirect URL.

        Parameters
        ----------
        url : str
            URL received by the host application's URL-open hook.
        options : Mapping[str, Any], optional
            Launch options of the hook; accepted for signature parity.

        Returns
        -------
        bool
            True if the URL belonged to this session and produced (or
            started producing) its outcome, False otherwise.
        """
        if not url.lower().startswith(self.redirect_url.lower()):
            return False

        try:
            values = parse_redirect_values(url)
        except ValueError:
            logger.warning("Flow %s: could not parse redirect URL", self.flow_id)
            self._deliver(
                AuthResult.failed(
                    InvalidResponseError(
                        "Redirect URL could not be parsed",
                        raw_payload=url.encode("utf-8"),
                        flow_id=self.flow_id,
                    )
                )
            )
            return True

        if self.expected_state is not None and values.get("state") != self.expected_state:
            logger.warning(
                "Flow %s: ignoring redirect with mismatched state: %s",
                self.flow_id,
                redact_sensitive_data(values),
            )
            return False

        error = values.get("error")
        if error is not None:
            description = values.get("error_description")
            if description is None:
                failure: AuthenticationError = InvalidResponseError(
                    f"Authorization server returned '{error}' without a description",
                    raw_payload=url.encode("utf-8"),
                    flow_id=self.flow_id,
                )
            else:
                failure = ServerResponseError(
                    f"Authorization server returned error: {description}",
                    code=error,
                    description=description,
                    flow_id=self.flow_id,
                )
            self._deliver(AuthResult.failed(failure))
            return True

        if self._claim():
            logger.debug("Flow %s: redirect matched, exchanging", self.flow_id)
            self.dispatcher.run_coroutine(self.grant.exchange(values), self._on_exchanged)
        return True

    def cancel(self) -> None:
        """End the session with ``AuthFlowCancelled``."""
        self._deliver(
            AuthResult.failed(AuthFlowCancelled("Authorization was cancelled", flow_id=self.flow_id))
        )

    def _claim(self) -> bool:
        """Move to RESOLVED; False if another outcome already won."""
        if self._status is SessionStatus.RESOLVED:
            logger.debug("Flow %s: already resolved", self.flow_id)
            return False
        self._status = SessionStatus.RESOLVED
        return True

    def _deliver(self, result: AuthResult) -> None:
        if self._claim():
            self._invoke(result)

    def _invoke(self, result: AuthResult) -> None:
        finish, self._finish = self._finish, None
        if finish is not None:
            finish(result)

    def _on_exchanged(self, future: Future[Credentials]) -> None:
        try:
            result = AuthResult.succeeded(future.result())
        except AuthenticationError as exc:
            result = AuthResult.failed(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Flow %s: credential exchange raised", self.flow_id)
            result = AuthResult.failed(
                RequestFailedError(
                    f"Credential exchange failed: {exc}", cause=exc, flow_id=self.flow_id
                )
            )
        self._invoke(result)

"""OAuth2 authorization flow orchestrator.

``OAuth2`` builds the authorize URL, presents it in an authorization
browser, registers an ``OAuth2Session`` that waits for the redirect,
and bridges the session's outcome back to the caller on the UI context.

Example::

    flow = oauth2(client_id="cid", domain="samples.auth0.com", app_identifier="com.example.app")
    flow.start(print, flow.options.scope("openid profile"))

    # later, from the application's URL-open hook
    resume_auth(url)
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from .browser import SystemBrowser
from .config import get_settings
from .dispatch import ImmediateDispatcher
from .exceptions import ConfigurationError, RequestFailedError
from .grants import ImplicitGrant, OAuth2Grant, PKCEGrant
from .log import set_format, set_level
from .pkce import generate_state
from .registry import get_session_registry
from .session import OAuth2Session
from .types import AuthResult
from .urls import build_authorize_url, build_redirect_uri, normalize_domain


if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

    from .browser import AuthorizationBrowser
    from .config import AuthFlowSettings
    from .dispatch import Dispatcher
    from .registry import SessionRegistry
    from .types import AuthCallback


logger = logging.getLogger("authflow.flow")


class AuthorizeOptions(BaseModel):
    """Immutable options of one authorization request.

    Every fluent method returns a modified copy.
    """

    model_config = ConfigDict(frozen=True)

    state: str | None = Field(default_factory=generate_state)
    parameters: dict[str, str] = Field(default_factory=dict)
    use_pkce: bool = True
    universal_link: bool = False

    def connection(self, connection: str) -> AuthorizeOptions:
        """Authenticate with a named connection instead of the hosted login page."""
        return self.with_parameters({"connection": connection})

    def scope(self, scope: str) -> AuthorizeOptions:
        """Request the given space-separated scopes."""
        return self.with_parameters({"scope": scope})

    def audience(self, audience: str) -> AuthorizeOptions:
        """Request tokens for the given API audience."""
        return self.with_parameters({"audience": audience})

    def with_state(self, state: str | None) -> AuthorizeOptions:
        """Use a fixed state value; None disables state checking."""
        return self.model_copy(update={"state": state})

    def with_parameters(self, parameters: dict[str, str]) -> AuthorizeOptions:
        """Add extra authorize parameters, replacing existing keys."""
        return self.model_copy(update={"parameters": {**self.parameters, **parameters}})

    def using_implicit_grant(self) -> AuthorizeOptions:
        """Use the implicit grant (``response_type=token``) instead of PKCE."""
        return self.model_copy(update={"use_pkce": False})

    def using_universal_link(self) -> AuthorizeOptions:
        """Use an ``https`` redirect URI instead of the app identifier scheme."""
        return self.model_copy(update={"universal_link": True})


class OAuth2:
    """Starts browser-based OAuth2 authorization flows.

    Parameters
    ----------
    client_id : str
        The OAuth2 client ID.
    issuer_url : str
        Base URL of the authorization server.
    app_identifier : str or None
        Identifier of the host application; flows fail with
        ``RequestFailedError`` when it is missing.
    browser : AuthorizationBrowser, optional
        Presents the authorize page (default ``SystemBrowser``).
    registry : SessionRegistry, optional
        Tracks the outstanding session (default: the application registry).
    dispatcher : Dispatcher, optional
        UI-affinity execution context (default ``ImmediateDispatcher``).
    options : AuthorizeOptions, optional
        Options used when ``start`` is called without any.
    platform : str
        Platform path segment of the redirect URI (default ``"ios"``).
    http_client : httpx.AsyncClient, optional
        Client for the PKCE token exchange.
    token_timeout : float
        Timeout of the PKCE token exchange (default ``30``).
    """

    def __init__(
        self,
        client_id: str,
        issuer_url: str,
        app_identifier: str | None = None,
        browser: AuthorizationBrowser | None = None,
        registry: SessionRegistry | None = None,
        dispatcher: Dispatcher | None = None,
        options: AuthorizeOptions | None = None,
        platform: str = "ios",
        http_client: httpx.AsyncClient | None = None,
        token_timeout: float = 30.0,
    ) -> None:
        """Initialize the orchestrator."""
        self.client_id = client_id
        self.issuer_url = issuer_url
        self.app_identifier = app_identifier
        self.browser = browser or SystemBrowser()
        self.registry = registry if registry is not None else get_session_registry()
        self.dispatcher = dispatcher or ImmediateDispatcher()
        self.options = options or AuthorizeOptions()
        self.platform = platform
        self.http_client = http_client
        self.token_timeout = token_timeout

    @classmethod
    def from_settings(cls, settings: AuthFlowSettings | None = None, **kwargs: Any) -> OAuth2:
        """Build an orchestrator from configuration.

        Parameters
        ----------
        settings : AuthFlowSettings, optional
            Settings to use (default: ``get_settings()``).
        **kwargs : Any
            Forwarded to the constructor (browser, registry, dispatcher, ...).

        Raises
        ------
        ConfigurationError
            If ``client_id`` or ``domain`` is not configured.
        """
        settings = settings or get_settings()
        set_level(settings.log.level)
        set_format(settings.log.format)

        oauth = settings.oauth2
        if not oauth.client_id:
            msg = "OAuth2 client_id is not configured"
            raise ConfigurationError(msg, setting="AUTHFLOW_OAUTH2__CLIENT_ID")
        if not oauth.domain:
            msg = "OAuth2 domain is not configured"
            raise ConfigurationError(msg, setting="AUTHFLOW_OAUTH2__DOMAIN")

        options = AuthorizeOptions(use_pkce=oauth.use_pkce, universal_link=oauth.universal_link)
        extra = {
            "scope": oauth.scope,
            "connection": oauth.connection,
            "audience": oauth.audience,
        }
        options = options.with_parameters({k: v for k, v in extra.items() if v})

        kwargs.setdefault("options", options)
        kwargs.setdefault("platform", oauth.platform)
        kwargs.setdefault("token_timeout", oauth.token_timeout_seconds)
        return cls(
            client_id=oauth.client_id,
            issuer_url=normalize_domain(oauth.domain),
            app_identifier=oauth.app_identifier or None,
            **kwargs,
        )

    def redirect_uri(self, universal_link: bool = False) -> str | None:
        """Compute the redirect URI, or None without an app identifier."""
        if not self.app_identifier:
            return None
        return build_redirect_uri(
            self.issuer_url,
            self.app_identifier,
            universal_link=universal_link,
            platform=self.platform,
        )

    def grant(self, redirect_uri: str, options: AuthorizeOptions) -> OAuth2Grant:
        """Select the grant strategy for a flow."""
        if not options.use_pkce:
            return ImplicitGrant()
        return PKCEGrant(
            client_id=self.client_id,
            issuer_url=self.issuer_url,
            redirect_uri=redirect_uri,
            client=self.http_client,
            timeout=self.token_timeout,
        )

    def authorize_url(
        self, redirect_uri: str, grant: OAuth2Grant, options: AuthorizeOptions
    ) -> str:
        """Build the authorize URL for a flow."""
        return build_authorize_url(
            self.issuer_url,
            client_id=self.client_id,
            redirect_uri=redirect_uri,
            state=options.state,
            defaults=grant.defaults,
            parameters=options.parameters,
        )

    def start(
        self, callback: AuthCallback, options: AuthorizeOptions | None = None
    ) -> OAuth2Session | None:
        """Start an authorization flow.

        Opens the authorize page and registers a session that completes
        when ``resume_auth`` receives the redirect, when the user
        dismisses the page, or when another flow replaces it.

        Parameters
        ----------
        callback : callable
            Receives exactly one ``AuthResult`` on the UI context.
        options : AuthorizeOptions, optional
            Options of this request (default ``self.options``).

        Returns
        -------
        OAuth2Session or None
            The registered session, or None if the flow failed before
            the page was opened (the callback has then already run).
        """
        options = options or self.options

        redirect_uri = self.redirect_uri(options.universal_link)
        if redirect_uri is None:
            cause = ConfigurationError("Cannot determine the application identifier")
            callback(
                AuthResult.failed(
                    RequestFailedError("Cannot build the redirect URI", cause=cause)
                )
            )
            return None

        grant = self.grant(redirect_uri, options)
        url = self.authorize_url(redirect_uri, grant, options)

        label = self.browser.open(url)
        # The listener resolves ``session`` when the page is dismissed
        unsubscribe = self.browser.subscribe(
            label, lambda _label, _reason: self.registry.cancel(session)
        )
        session = OAuth2Session(
            redirect_url=redirect_uri,
            grant=grant,
            finish=self._finisher(label, unsubscribe, callback),
            expected_state=options.state,
            dispatcher=self.dispatcher,
            browser_label=label,
        )
        self.registry.store(session)
        logger.info("Flow %s started (%s)", session.flow_id, type(grant).__name__)
        return session

    def _finisher(
        self, label: str, unsubscribe: Callable[[], None], callback: AuthCallback
    ) -> AuthCallback:
        """Wrap ``callback`` to release the page and hop onto the UI context.

        Every outcome releases the page so nothing keeps a finished session
        alive. Cancellations leave the page on screen; other outcomes close
        it if it is still open.
        """

        def deliver(result: AuthResult) -> None:
            unsubscribe()
            if not result.cancelled and self.browser.is_open(label):
                self.browser.close(label)
            else:
                self.browser.forget(label)
            callback(result)

        def finish(result: AuthResult) -> None:
            self.dispatcher.call_soon(deliver, result)

        return finish


def oauth2(client_id: str, domain: str, **kwargs: Any) -> OAuth2:
    """Create an orchestrator for a client of the given domain.

    Parameters
    ----------
    client_id : str
        The OAuth2 client ID.
    domain : str
        Bare domain (``samples.auth0.com``) or issuer URL.
    **kwargs : Any
        Forwarded to ``OAuth2``.
    """
    return OAuth2(client_id=client_id, issuer_url=normalize_domain(domain), **kwargs)

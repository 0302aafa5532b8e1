"""Browser-based OAuth2 authorization flows for native applications.

Starts an authorize request in an authorization browser, matches the
redirect the application later receives to the outstanding flow, and
delivers exactly one result (credentials, error or cancellation) to
the caller.
"""

from __future__ import annotations

from .browser import AuthorizationBrowser, CallbackBrowser, SystemBrowser
from .config import AuthFlowSettings, OAuth2Settings, get_settings, reload_settings
from .dispatch import AsyncioDispatcher, Dispatcher, ImmediateDispatcher
from .exceptions import (
    AuthenticationError,
    AuthFlowCancelled,
    AuthFlowException,
    ConfigurationError,
    InvalidResponseError,
    RequestFailedError,
    ServerResponseError,
)
from .flow import AuthorizeOptions, OAuth2, oauth2
from .grants import ImplicitGrant, OAuth2Grant, PKCEGrant
from .pkce import PKCEChallenge, generate_state
from .registry import (
    SessionRegistry,
    get_session_registry,
    reset_session_registry,
    resume_auth,
)
from .session import OAuth2Session
from .types import AuthResult, Credentials, SessionStatus


__version__ = "0.1.0"

__all__ = [
    "AsyncioDispatcher",
    "AuthFlowCancelled",
    "AuthFlowException",
    "AuthFlowSettings",
    "AuthResult",
    "AuthenticationError",
    "AuthorizationBrowser",
    "AuthorizeOptions",
    "CallbackBrowser",
    "ConfigurationError",
    "Credentials",
    "Dispatcher",
    "ImmediateDispatcher",
    "ImplicitGrant",
    "InvalidResponseError",
    "OAuth2",
    "OAuth2Grant",
    "OAuth2Session",
    "OAuth2Settings",
    "PKCEChallenge",
    "PKCEGrant",
    "RequestFailedError",
    "ServerResponseError",
    "SessionRegistry",
    "SessionStatus",
    "SystemBrowser",
    "generate_state",
    "get_session_registry",
    "get_settings",
    "oauth2",
    "reload_settings",
    "reset_session_registry",
    "resume_auth",
]

"""authflow exception hierarchy.

All authflow-specific exceptions inherit from AuthFlowException, enabling
catch-all handling while supporting specific error types.

The ``AuthenticationError`` subclasses double as the terminal outcomes of an
authorization flow: they are delivered as values inside an ``AuthResult``
rather than raised into the redirect entry point.
"""

from __future__ import annotations

from typing import Any


class AuthFlowException(Exception):
    """Base exception for all authflow errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize authflow exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (flow_id, code, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(AuthFlowException):
    """Settings are missing or inconsistent.

    Raised synchronously when an orchestrator cannot be built from
    the configured settings.
    """


class AuthenticationError(AuthFlowException):
    """Base exception for all authorization flow failures."""

    def __init__(self, message: str, flow_id: str | None = None, **context: Any) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        flow_id : str, optional
            The identifier of the flow that failed.
        **context : Any
            Additional context.
        """
        if flow_id is not None:
            context["flow_id"] = flow_id
        super().__init__(message, **context)
        self.flow_id = flow_id


class AuthFlowCancelled(AuthenticationError):
    """Authorization flow was cancelled.

    Delivered when the user dismisses the authorization browser or
    when a newer flow replaces this one.
    """


class InvalidResponseError(AuthenticationError):
    """The redirect or token response could not be understood.

    Carries the raw payload for diagnostics.
    """

    def __init__(
        self,
        message: str,
        raw_payload: bytes | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize invalid response error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        raw_payload : bytes, optional
            The raw redirect URL or response body.
        flow_id : str, optional
            The identifier of the flow that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, flow_id=flow_id, **context)
        self.raw_payload = raw_payload


class ServerResponseError(AuthenticationError):
    """The authorization server reported an error.

    ``code`` and ``description`` are surfaced verbatim from the server.
    """

    def __init__(
        self,
        message: str,
        code: str,
        description: str,
        name: str | None = None,
        extras: dict[str, Any] | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize server response error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        code : str
            The OAuth2 ``error`` code (e.g. ``access_denied``).
        description : str
            The ``error_description`` sent by the server.
        name : str, optional
            Error name, when the server sends one.
        extras : dict, optional
            Remaining keys of the error payload.
        flow_id : str, optional
            The identifier of the flow that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, flow_id=flow_id, code=code, **context)
        self.code = code
        self.description = description
        self.name = name
        self.extras = extras or {}


class RequestFailedError(AuthenticationError):
    """A local precondition or the network request failed."""

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize request failed error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        cause : BaseException, optional
            The underlying exception.
        flow_id : str, optional
            The identifier of the flow that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, flow_id=flow_id, **context)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

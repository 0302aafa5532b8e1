"""Registry of the single outstanding authorization session.

At most one ``OAuth2Session`` is current. Storing a new session cancels
the previous one, a matching redirect clears the slot, and a dismissal
only cancels the session it belongs to.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .log import debug


if TYPE_CHECKING:
    from collections.abc import Mapping

    from .session import OAuth2Session


class SessionRegistry:
    """Holds the current authorization session.

    Construct one per application and hand it to whatever starts flows
    or receives redirects. All calls are expected on the UI context.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._current: OAuth2Session | None = None

    @property
    def current(self) -> OAuth2Session | None:
        """The session awaiting a redirect, if any."""
        return self._current

    def store(self, session: OAuth2Session) -> None:
        """Make ``session`` current, cancelling the previous occupant first."""
        previous, self._current = self._current, None
        if previous is not None:
            debug(f"Replacing session {previous.flow_id} with {session.flow_id}")
            previous.cancel()
        self._current = session

    def resume(self, url: str, options: Mapping[str, Any] | None = None) -> bool:
        """Offer a redirect URL to the current session.

        Returns
        -------
        bool
            True if the current session claimed the URL.
        """
        session = self._current
        if session is None:
            return False
        resumed = session.resume(url, options)
        if resumed and self._current is session:
            self._current = None
        return resumed

    def cancel(self, session: OAuth2Session) -> None:
        """Cancel ``session`` if it is still the current one."""
        if self._current is not session:
            return
        self._current = None
        session.cancel()

    def clear(self) -> None:
        """Cancel and drop the current session, if any."""
        if self._current is not None:
            self.cancel(self._current)


class _RegistryHolder:
    """Holder for the default registry instance."""

    instance: SessionRegistry | None = None


def get_session_registry() -> SessionRegistry:
    """Get the application's default session registry.

    Returns
    -------
    SessionRegistry
        Created on first use.
    """
    if _RegistryHolder.instance is None:
        _RegistryHolder.instance = SessionRegistry()
    return _RegistryHolder.instance


def reset_session_registry() -> None:
    """Cancel any pending session and discard the default registry."""
    if _RegistryHolder.instance is not None:
        _RegistryHolder.instance.clear()
    _RegistryHolder.instance = None


def resume_auth(
    url: str,
    options: Mapping[str, Any] | None = None,
    registry: SessionRegistry | None = None,
) -> bool:
    """Hand a URL received by the host application to the pending flow.

    Call this from the application's URL-open hook.

    Parameters
    ----------
    url : str
        The URL the application was opened with.
    options : Mapping[str, Any], optional
        Launch options from the hook.
    registry : SessionRegistry, optional
        Registry to use instead of the default one.

    Returns
    -------
    bool
        Whether an authorization flow claimed the URL.
    """
    if registry is None:
        registry = get_session_registry()
    claimed = registry.resume(url, options)
    if not claimed:
        debug("URL was not claimed by an authorization flow")
    return claimed

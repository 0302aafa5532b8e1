"""Authorization browser abstraction.

The browser that shows the authorize page is an external component.
Flows refer to an opened page only by its label; the label is a
non-owning handle used to ask whether the page is still open, to close
it, and to subscribe to its dismissal by the user.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import contextlib
import logging
import uuid
import webbrowser

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger("authflow.browser")


@dataclass
class BrowserPage:
    """Tracks an authorize page opened by a browser."""

    label: str
    url: str
    listeners: list[Callable[[str, str], None]] = field(default_factory=list)
    handle: Any = None


class AuthorizationBrowser(ABC):
    """Base class for components that present the authorize page.

    Subclasses implement ``_show`` and ``_hide``; page bookkeeping and
    dismissal notification live here.
    """

    def __init__(self) -> None:
        """Initialize the browser."""
        self._pages: dict[str, BrowserPage] = {}

    @abstractmethod
    def _show(self, url: str, label: str) -> Any:
        """Present ``url``; the return value is stored as the page handle."""

    @abstractmethod
    def _hide(self, page: BrowserPage) -> None:
        """Stop presenting ``page``."""

    def open(self, url: str) -> str:
        """Present the authorize page.

        Parameters
        ----------
        url : str
            The authorize URL.

        Returns
        -------
        str
            Label identifying the opened page.
        """
        label = f"authflow-{uuid.uuid4().hex[:12]}"
        page = BrowserPage(label=label, url=url)
        self._pages[label] = page
        page.handle = self._show(url, label)
        logger.debug("Opened authorize page %s", label)
        return label

    def is_open(self, label: str) -> bool:
        """Whether the page with ``label`` is still presented."""
        return label in self._pages

    def close(self, label: str) -> None:
        """Close a page programmatically.

        Subscribers are not notified; closing an unknown or already
        dismissed label does nothing.
        """
        page = self._pages.pop(label, None)
        if page is None:
            return
        logger.debug("Closing authorize page %s", label)
        self._hide(page)

    def forget(self, label: str) -> None:
        """Drop a page and its listeners without hiding it or notifying anyone."""
        if self._pages.pop(label, None) is not None:
            logger.debug("Forgot authorize page %s", label)

    def get_labels(self) -> list[str]:
        """Labels of the pages still tracked, in opening order."""
        return list(self._pages)

    def subscribe(self, label: str, listener: Callable[[str, str], None]) -> Callable[[], None]:
        """Register a dismissal listener for a page.

        Parameters
        ----------
        label : str
            The page label returned by ``open``.
        listener : callable
            Called once with ``(label, reason)`` if the user dismisses
            the page.

        Returns
        -------
        callable
            Removes the listener when called.
        """
        page = self._pages.get(label)
        if page is None:
            return lambda: None
        page.listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                page.listeners.remove(listener)

        return unsubscribe

    def notify_dismissed(self, label: str, reason: str = "user") -> None:
        """Report that the user dismissed a page.

        Hosts call this from their browser's close event. The page is
        forgotten before its listeners run.
        """
        page = self._pages.pop(label, None)
        if page is None:
            return
        logger.debug("Authorize page %s dismissed (%s)", label, reason)
        for listener in list(page.listeners):
            listener(label, reason)


class SystemBrowser(AuthorizationBrowser):
    """Opens the authorize page in the user's default web browser.

    The system browser cannot be closed from here, so ``close`` only
    forgets the page.
    """

    def _show(self, url: str, label: str) -> Any:
        if not webbrowser.open(url):
            logger.info("Open this URL to authenticate: %s", url)
        return None

    def _hide(self, page: BrowserPage) -> None:
        return None


class CallbackBrowser(AuthorizationBrowser):
    """Adapts host-provided show/close callables.

    Parameters
    ----------
    show : callable
        ``show(url, label) -> handle``; presents the page.
    hide : callable, optional
        ``hide(handle) -> None``; receives the handle ``show`` returned.
    """

    def __init__(
        self,
        show: Callable[[str, str], Any],
        hide: Callable[[Any], None] | None = None,
    ) -> None:
        """Initialize the callback browser."""
        super().__init__()
        self._show_func = show
        self._hide_func = hide

    def _show(self, url: str, label: str) -> Any:
        return self._show_func(url, label)

    def _hide(self, page: BrowserPage) -> None:
        if self._hide_func is not None:
            self._hide_func(page.handle)

"""Test doubles shared across the suite."""

from __future__ import annotations

from typing import Any

from authflow.browser import AuthorizationBrowser, BrowserPage
from authflow.types import AuthResult


class Recorder:
    """Completion callback that records every result it receives."""

    def __init__(self) -> None:
        self.results: list[AuthResult] = []

    def __call__(self, result: AuthResult) -> None:
        self.results.append(result)

    @property
    def count(self) -> int:
        return len(self.results)

    @property
    def last(self) -> AuthResult:
        assert self.results, "callback was never invoked"
        return self.results[-1]


class FakeBrowser(AuthorizationBrowser):
    """Browser that records shown and hidden pages instead of presenting them."""

    def __init__(self) -> None:
        super().__init__()
        self.shown: list[tuple[str, str]] = []
        self.hidden: list[str] = []

    def _show(self, url: str, label: str) -> Any:
        self.shown.append((label, url))
        return label

    def _hide(self, page: BrowserPage) -> None:
        self.hidden.append(page.label)

    @property
    def last_url(self) -> str:
        return self.shown[-1][1]

    @property
    def last_label(self) -> str:
        return self.shown[-1][0]

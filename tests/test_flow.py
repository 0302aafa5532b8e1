"""Integration tests for the OAuth2 flow orchestrator."""

from __future__ import annotations

import asyncio
import gc
import weakref

from urllib.parse import parse_qs, parse_qsl, urlsplit

import httpx
import pytest

from pydantic import ValidationError

from authflow.config import AuthFlowSettings, OAuth2Settings
from authflow.dispatch import AsyncioDispatcher
from authflow.exceptions import ConfigurationError, RequestFailedError
from authflow.flow import AuthorizeOptions, OAuth2, oauth2
from authflow.grants import ImplicitGrant, PKCEGrant
from authflow.pkce import PKCEChallenge
from authflow.registry import resume_auth
from tests.constants import APP_ID, ISSUER, REDIRECT
from tests.helpers import Recorder


# ── Helpers ──────────────────────────────────────────────────────────


def _flow(browser, registry, **kwargs) -> OAuth2:
    kwargs.setdefault("app_identifier", APP_ID)
    return OAuth2(
        client_id="cid",
        issuer_url=ISSUER,
        browser=browser,
        registry=registry,
        **kwargs,
    )


def _query(url: str) -> dict[str, str]:
    return dict(parse_qsl(urlsplit(url).query))


def _token_client(seen: list[httpx.Request]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"access_token": "at_mock", "token_type": "Bearer", "expires_in": 3600}
        )

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── Options ─────────────────────────────────────────────────────────


class TestAuthorizeOptions:
    """Tests for the immutable AuthorizeOptions builder."""

    def test_defaults(self) -> None:
        """PKCE, app scheme and a random state by default."""
        options = AuthorizeOptions()
        assert options.use_pkce is True
        assert options.universal_link is False
        assert options.state
        assert options.parameters == {}

    def test_fluent_methods_return_copies(self) -> None:
        """Fluent methods leave the original untouched."""
        base = AuthorizeOptions()
        derived = base.connection("github").scope("openid email").using_implicit_grant()
        assert base.parameters == {}
        assert base.use_pkce is True
        assert derived.parameters == {"connection": "github", "scope": "openid email"}
        assert derived.use_pkce is False
        assert derived.state == base.state

    def test_with_parameters_overrides(self) -> None:
        """Later parameters replace earlier keys."""
        options = AuthorizeOptions().scope("openid").with_parameters({"scope": "email", "x": "1"})
        assert options.parameters == {"scope": "email", "x": "1"}

    def test_with_state(self) -> None:
        """State can be fixed or disabled."""
        assert AuthorizeOptions().with_state("s1").state == "s1"
        assert AuthorizeOptions().with_state(None).state is None

    def test_frozen(self) -> None:
        """Options cannot be mutated in place."""
        options = AuthorizeOptions()
        with pytest.raises(ValidationError):
            options.use_pkce = False  # type: ignore[misc]


# ── Start ───────────────────────────────────────────────────────────


class TestFlowStart:
    """Tests for OAuth2.start()."""

    def test_missing_app_identifier(self, browser, registry, recorder) -> None:
        """Without an app identifier the flow fails immediately."""
        flow = _flow(browser, registry, app_identifier=None)
        assert flow.start(recorder) is None
        assert isinstance(recorder.last.error, RequestFailedError)
        assert isinstance(recorder.last.error.cause, ConfigurationError)
        assert browser.shown == []
        assert registry.current is None

    def test_pkce_authorize_url(self, browser, registry, recorder) -> None:
        """The default flow opens a PKCE authorize URL."""
        flow = _flow(browser, registry)
        options = AuthorizeOptions().with_state("s1").connection("github")
        session = flow.start(recorder, options)

        parts = urlsplit(browser.last_url)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == f"{ISSUER}/authorize"
        query = parse_qsl(parts.query)
        assert [k for k, _ in query] == [
            "client_id",
            "redirect_uri",
            "state",
            "response_type",
            "code_challenge",
            "code_challenge_method",
            "connection",
        ]
        values = dict(query)
        assert values["client_id"] == "cid"
        assert values["redirect_uri"] == f"{APP_ID}://app.example/ios/{APP_ID}/callback"
        assert values["state"] == "s1"
        assert values["response_type"] == "code"
        assert values["code_challenge_method"] == "S256"
        assert isinstance(session.grant, PKCEGrant)
        assert values["code_challenge"] == session.grant.challenge.challenge
        assert session.grant.code_verifier not in browser.last_url

        assert registry.current is session
        assert session.browser_label == browser.last_label
        assert recorder.count == 0

    def test_implicit_grant(self, browser, registry, recorder) -> None:
        """Implicit flows ask for a token response."""
        flow = _flow(browser, registry)
        session = flow.start(recorder, AuthorizeOptions().using_implicit_grant())
        assert _query(browser.last_url)["response_type"] == "token"
        assert isinstance(session.grant, ImplicitGrant)

    def test_universal_link(self, browser, registry, recorder) -> None:
        """Universal link flows redirect to an https URI."""
        flow = _flow(browser, registry)
        session = flow.start(recorder, AuthorizeOptions().using_universal_link())
        assert session.redirect_url == REDIRECT
        assert _query(browser.last_url)["redirect_uri"] == REDIRECT

    def test_default_options(self, browser, registry, recorder) -> None:
        """Options given to the orchestrator apply when start() gets none."""
        flow = _flow(browser, registry, options=AuthorizeOptions().scope("openid"))
        flow.start(recorder)
        assert _query(browser.last_url)["scope"] == "openid"


# ── Completion ──────────────────────────────────────────────────────


class TestFlowCompletion:
    """Tests for how outcomes reach the caller."""

    def test_implicit_redirect(self, browser, registry, recorder) -> None:
        """A matching implicit redirect delivers credentials and closes the page."""
        flow = _flow(browser, registry)
        options = AuthorizeOptions().with_state("xyz").using_implicit_grant().using_universal_link()
        flow.start(recorder, options)
        label = browser.last_label

        url = f"{REDIRECT}#access_token=abc&token_type=Bearer&state=xyz"
        assert resume_auth(url, registry=registry) is True

        assert recorder.count == 1
        assert recorder.last.credentials.access_token == "abc"
        assert browser.hidden == [label]
        assert not browser.is_open(label)
        assert registry.current is None

    def test_foreign_state_ignored(self, browser, registry, recorder) -> None:
        """A redirect with another state is not claimed."""
        flow = _flow(browser, registry)
        options = AuthorizeOptions().with_state("xyz").using_implicit_grant().using_universal_link()
        session = flow.start(recorder, options)

        assert resume_auth(f"{REDIRECT}#access_token=abc&state=other", registry=registry) is False
        assert recorder.count == 0
        assert registry.current is session
        assert browser.hidden == []

    def test_server_error_closes_page(self, browser, registry, recorder) -> None:
        """Errors also close the page before delivery."""
        flow = _flow(browser, registry)
        options = AuthorizeOptions().with_state("xyz").using_universal_link()
        flow.start(recorder, options)

        url = f"{REDIRECT}#error=access_denied&error_description=User%20denied&state=xyz"
        assert registry.resume(url) is True
        assert recorder.last.error.code == "access_denied"
        assert recorder.last.error.description == "User denied"
        assert browser.hidden == [browser.last_label]

    def test_pkce_code_exchange(self, browser, registry, recorder) -> None:
        """A code redirect is exchanged with the stored verifier."""
        seen: list[httpx.Request] = []
        flow = _flow(browser, registry, http_client=_token_client(seen))
        session = flow.start(recorder, AuthorizeOptions().with_state("xyz"))

        redirect = f"{APP_ID}://app.example/ios/{APP_ID}/callback"
        assert registry.resume(f"{redirect}?code=the-code&state=xyz") is True

        assert recorder.count == 1
        assert recorder.last.credentials.access_token == "at_mock"
        body = {k: v[0] for k, v in parse_qs(seen[0].content.decode()).items()}
        assert body["code"] == "the-code"
        assert body["code_verifier"] == session.grant.code_verifier
        assert body["redirect_uri"] == redirect
        assert body["grant_type"] == "authorization_code"

    def test_dismissal_cancels(self, browser, registry, recorder) -> None:
        """Dismissing the page cancels the flow without closing it again."""
        flow = _flow(browser, registry)
        flow.start(recorder)

        browser.notify_dismissed(browser.last_label)

        assert recorder.count == 1
        assert recorder.last.cancelled
        assert registry.current is None
        assert browser.hidden == []

    def test_second_flow_cancels_first(self, browser, registry) -> None:
        """Starting a new flow cancels the one in progress."""
        first, second = Recorder(), Recorder()
        flow = _flow(browser, registry)
        flow.start(first)
        first_label = browser.last_label
        session = flow.start(second)

        assert first.count == 1
        assert first.last.cancelled
        assert registry.current is session

        browser.notify_dismissed(first_label)
        assert registry.current is session
        assert first.count == 1
        assert second.count == 0

    def test_dismissal_after_redirect(self, browser, registry, recorder) -> None:
        """A late dismissal does not deliver a second result."""
        flow = _flow(browser, registry)
        options = AuthorizeOptions().with_state("xyz").using_implicit_grant().using_universal_link()
        flow.start(recorder, options)
        label = browser.last_label

        registry.resume(f"{REDIRECT}#access_token=abc&state=xyz")
        browser.notify_dismissed(label)

        assert recorder.count == 1
        assert recorder.last.success

    def test_asyncio_dispatcher(self, browser, registry) -> None:
        """Outcomes are delivered on the loop of an AsyncioDispatcher."""

        async def scenario():
            loop = asyncio.get_running_loop()
            done: asyncio.Future = loop.create_future()
            seen: list[httpx.Request] = []
            flow = _flow(
                browser,
                registry,
                dispatcher=AsyncioDispatcher(loop),
                http_client=_token_client(seen),
            )
            flow.start(done.set_result, AuthorizeOptions().with_state("xyz").using_universal_link())
            assert registry.resume(f"{REDIRECT}?code=c&state=xyz") is True
            assert not done.done()
            return await asyncio.wait_for(done, timeout=5)

        result = asyncio.run(scenario())
        assert result.credentials.access_token == "at_mock"
        assert browser.hidden


# ── Construction ────────────────────────────────────────────────────


class TestFlowConstruction:
    """Tests for oauth2() and OAuth2.from_settings()."""

    def test_oauth2_factory_normalizes_domain(self, browser, registry) -> None:
        """A bare domain becomes an https issuer."""
        flow = oauth2("cid", "samples.auth0.com", browser=browser, registry=registry)
        assert flow.issuer_url == "https://samples.auth0.com"
        assert flow.redirect_uri() is None

    def test_redirect_uri(self, browser, registry) -> None:
        """The redirect URI combines issuer host, platform and app identifier."""
        flow = _flow(browser, registry, platform="android")
        assert flow.redirect_uri() == f"{APP_ID}://app.example/android/{APP_ID}/callback"

    def test_from_settings(self, isolated_config, browser, registry, recorder) -> None:
        """Settings provide client, domain and default parameters."""
        settings = AuthFlowSettings(
            oauth2=OAuth2Settings(
                client_id="cid",
                domain="app.example",
                app_identifier=APP_ID,
                use_pkce=False,
                scope="openid profile",
                audience="https://api.example",
            )
        )
        flow = OAuth2.from_settings(settings, browser=browser, registry=registry)
        assert flow.issuer_url == ISSUER
        assert flow.options.use_pkce is False
        assert flow.options.parameters == {
            "scope": "openid profile",
            "audience": "https://api.example",
        }

        flow.start(recorder)
        query = _query(browser.last_url)
        assert query["response_type"] == "token"
        assert query["scope"] == "openid profile"

    def test_from_settings_requires_client_id(self, isolated_config) -> None:
        """A missing client id is a configuration error."""
        settings = AuthFlowSettings(oauth2=OAuth2Settings(domain="app.example"))
        with pytest.raises(ConfigurationError):
            OAuth2.from_settings(settings)

    def test_from_settings_requires_domain(self, isolated_config) -> None:
        """A missing domain is a configuration error."""
        settings = AuthFlowSettings(oauth2=OAuth2Settings(client_id="cid"))
        with pytest.raises(ConfigurationError):
            OAuth2.from_settings(settings)

    def test_pkce_challenge_is_per_flow(self, browser, registry, recorder) -> None:
        """Every flow gets its own verifier."""
        flow = _flow(browser, registry)
        a = flow.start(recorder)
        b = flow.start(recorder)
        assert isinstance(a.grant.challenge, PKCEChallenge)
        assert a.grant.code_verifier != b.grant.code_verifier


# ── Page release ────────────────────────────────────────────────────


class TestFlowReleasesPages:
    """Finished flows leave nothing behind in the browser."""

    def test_replaced_flows_release_pages(self, browser, registry, recorder) -> None:
        """Only the page of the current flow stays tracked."""
        flow = _flow(browser, registry)
        for _ in range(5):
            flow.start(recorder)

        assert recorder.count == 4
        assert browser.get_labels() == [browser.last_label]
        assert len(browser._pages) == 1
        assert browser.hidden == []

    def test_replaced_session_is_dereferenced(self, browser, registry, recorder) -> None:
        """A replaced session can be garbage collected."""
        flow = _flow(browser, registry)
        first = weakref.ref(flow.start(recorder))
        flow.start(recorder)

        gc.collect()
        assert first() is None

    def test_completed_flow_releases_page(self, browser, registry, recorder) -> None:
        """A redirect outcome closes and forgets the page."""
        flow = _flow(browser, registry)
        options = AuthorizeOptions().with_state("xyz").using_implicit_grant().using_universal_link()
        flow.start(recorder, options)

        registry.resume(f"{REDIRECT}#access_token=abc&state=xyz")

        assert browser.get_labels() == []

    def test_dismissed_flow_releases_page(self, browser, registry, recorder) -> None:
        """A dismissal leaves no page behind."""
        flow = _flow(browser, registry)
        flow.start(recorder)
        browser.notify_dismissed(browser.last_label)
        assert browser.get_labels() == []

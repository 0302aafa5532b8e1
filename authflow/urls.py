"""Authorize URL and redirect URI construction."""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import urlencode, urljoin, urlsplit, urlunsplit


def normalize_domain(domain: str) -> str:
    """Turn a bare domain into an ``https`` issuer URL.

    ``samples.auth0.com`` becomes ``https://samples.auth0.com``; values
    that already carry a scheme are returned unchanged.
    """
    domain = domain.strip()
    if "://" in domain:
        return domain
    return f"https://{domain}"


def build_redirect_uri(
    issuer_url: str,
    app_identifier: str,
    universal_link: bool = False,
    platform: str = "ios",
) -> str:
    """Compute the callback URI the authorization server redirects to.

    The issuer URL keeps its host; its scheme is replaced by the app
    identifier, or by ``https`` when universal links are used.

    Parameters
    ----------
    issuer_url : str
        Base URL of the authorization server.
    app_identifier : str
        Identifier of the host application (e.g. ``com.example.app``).
    universal_link : bool
        Use ``https`` instead of the app identifier as the scheme.
    platform : str
        Platform path segment (default ``"ios"``).

    Returns
    -------
    str
        ``{scheme}://{host}/{platform}/{app_identifier}/callback``.
    """
    parts = urlsplit(issuer_url)
    scheme = "https" if universal_link else app_identifier
    path = "/".join([parts.path.rstrip("/"), platform, app_identifier, "callback"])
    if not path.startswith("/"):
        path = f"/{path}"
    return urlunsplit((scheme, parts.netloc, path, "", ""))


def build_authorize_url(
    issuer_url: str,
    client_id: str,
    redirect_uri: str,
    state: str | None,
    defaults: Mapping[str, str] | None = None,
    parameters: Mapping[str, str] | None = None,
) -> str:
    """Build the full authorization URL.

    Query parameters are emitted in order: ``client_id``,
    ``redirect_uri``, ``state``, the grant defaults, then the caller's
    parameters. A later entry with an existing key replaces the earlier
    value in place, so no key appears twice. Values are not validated.

    Parameters
    ----------
    issuer_url : str
        Base URL of the authorization server.
    client_id : str
        The OAuth2 client ID.
    redirect_uri : str
        The callback URL to redirect to after authorization.
    state : str or None
        Anti-forgery nonce; omitted from the URL when None.
    defaults : Mapping[str, str], optional
        Parameters required by the grant (``response_type``, PKCE challenge).
    parameters : Mapping[str, str], optional
        Caller-supplied parameters (``connection``, ``scope``, ...).

    Returns
    -------
    str
        The full authorization URL.
    """
    params: dict[str, str] = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
    }
    if state is not None:
        params["state"] = state
    if defaults:
        params.update(defaults)
    if parameters:
        params.update(parameters)

    authorize = urljoin(issuer_url, "/authorize")
    return f"{authorize}?{urlencode(params)}"


def build_token_url(issuer_url: str) -> str:
    """Return the token endpoint of an issuer."""
    return urljoin(issuer_url, "/oauth/token")

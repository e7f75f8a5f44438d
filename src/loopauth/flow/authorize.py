"""Authorization URL builder.

Composes the provider authorization endpoint, client id, redirect URI,
requested scopes and a fresh anti-forgery ``state`` into the
:class:`~loopauth.models.AuthorizationRequest` whose ``url`` the user must
visit. No network or disk I/O happens here; configuration problems are
reported as :class:`~loopauth.exceptions.ConfigurationError` before any
listener is started.
"""

from __future__ import annotations

import secrets
from typing import Iterable
from urllib.parse import urlsplit

from loopauth.exceptions import ConfigurationError
from loopauth.models import AuthorizationRequest, ClientCredentials, ProviderEndpoints

STATE_BYTES = 32


def generate_state() -> str:
    """Return a new unguessable CSRF state value (256 bits, URL-safe)."""
    return secrets.token_urlsafe(STATE_BYTES)


def redirect_uri_for(host: str, port: int) -> str:
    """Render the redirect URI served by a listener bound to *host*:*port*."""
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}"


def validate_url(url: str, name: str) -> str:
    """Check that *url* is an absolute ``http``/``https`` URL.

    Raises:
        ConfigurationError: If the scheme or host is missing or the port
            is not a number.
    """
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on a non-numeric port
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {name}: {url!r} ({exc})") from exc
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ConfigurationError(
            f"Invalid {name}: {url!r} (expected an absolute http(s) URL)"
        )
    return url


def build_authorization_request(
    credentials: ClientCredentials,
    endpoints: ProviderEndpoints,
    redirect_uri: str,
    scopes: Iterable[str] = (),
) -> AuthorizationRequest:
    """Build the authorization request for one flow run.

    Args:
        credentials: The client registration. Only ``client_id`` ends up in
            the URL.
        endpoints: The provider's endpoints.
        redirect_uri: URL of the loopback listener, see :func:`redirect_uri_for`.
        scopes: Scope identifiers to request.

    Returns:
        An :class:`~loopauth.models.AuthorizationRequest` carrying a freshly
        generated ``state``.

    Raises:
        ConfigurationError: If the client id or secret is empty, or any URL is
            malformed.
    """
    if not credentials.client_id:
        raise ConfigurationError("client_id must not be empty")
    if not credentials.client_secret.get_secret_value():
        raise ConfigurationError("client_secret must not be empty")
    validate_url(endpoints.authorize_url, "authorization endpoint URL")
    validate_url(endpoints.token_url, "token endpoint URL")
    validate_url(redirect_uri, "redirect URL")

    return AuthorizationRequest(
        endpoints=endpoints,
        client_id=credentials.client_id,
        redirect_uri=redirect_uri,
        scopes=frozenset(s for s in scopes if s),
        state=generate_state(),
    )

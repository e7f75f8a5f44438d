"""Token exchange client.

Submits an authorization code to the provider's token endpoint
(``grant_type=authorization_code``) and returns an
:class:`~loopauth.models.AccessToken`. Every failure -- transport error,
non-2xx status, an ``error`` payload in a 2xx body (GitHub reports a bad or
expired code this way), or a response without ``access_token`` -- is raised
as :class:`~loopauth.exceptions.TokenExchangeFailed` carrying the provider's
diagnostic text. The code itself is never part of an error message.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional, Union

import httpx
from pydantic import SecretStr, ValidationError

from loopauth.exceptions import TokenExchangeFailed
from loopauth.models import AccessToken, AuthorizationRequest, ClientCredentials

logger = logging.getLogger(__name__)

_SCOPE_SEPARATOR = re.compile(r"[,\s]+")
_MAX_DETAIL = 500


def parse_scopes(value: Any) -> frozenset[str]:
    """Parse a granted-scope value.

    RFC 6749 uses a space-delimited string, GitHub a comma-delimited one and
    some providers a JSON list; all three are accepted.
    """
    if not value:
        return frozenset()
    if isinstance(value, (list, tuple)):
        return frozenset(str(v) for v in value if v)
    return frozenset(s for s in _SCOPE_SEPARATOR.split(str(value)) if s)


def _provider_detail(response: httpx.Response) -> str:
    """Extract the provider's error text from a token endpoint response."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        detail = str(data["error"])
        if data.get("error_description"):
            detail += f" - {data['error_description']}"
        return detail
    text = response.text.strip()
    if len(text) > _MAX_DETAIL:
        text = text[:_MAX_DETAIL] + "..."
    return text or response.reason_phrase


class TokenExchangeClient:
    """Exchange authorization codes for access tokens over HTTP.

    Client authentication follows ``request.endpoints.client_auth``:
    ``"basic"`` sends the credentials as an HTTP Basic header, ``"post"``
    sends them as ``client_id``/``client_secret`` form fields.

    Args:
        credentials: The OAuth2 client registration.
        http_client: Optional :class:`httpx.Client` to send requests with.
            When omitted the exchange client owns one and closes it in
            :meth:`close`.
        timeout: Request timeout in seconds for an owned client.

    Example::

        with TokenExchangeClient(creds) as client:
            token = client.exchange(request, redirect.code)
    """

    def __init__(
        self,
        credentials: ClientCredentials,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ) -> None:
        self._credentials = credentials
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)

    def __enter__(self) -> TokenExchangeClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def exchange(
        self, request: AuthorizationRequest, code: Union[SecretStr, str]
    ) -> AccessToken:
        """Exchange *code* for an access token.

        Args:
            request: The authorization request the code was issued for; its
                ``redirect_uri`` must be repeated at the token endpoint.
            code: The authorization code from the redirect.

        Returns:
            The :class:`~loopauth.models.AccessToken` granted by the provider.

        Raises:
            TokenExchangeFailed: On transport errors, error statuses, error
                payloads, or a malformed token response.
        """
        if isinstance(code, SecretStr):
            code = code.get_secret_value()

        endpoints = request.endpoints
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": request.redirect_uri,
        }
        client_id = self._credentials.client_id
        client_secret = self._credentials.client_secret.get_secret_value()
        auth: Optional[httpx.BasicAuth] = None
        if endpoints.client_auth == "post":
            data["client_id"] = client_id
            data["client_secret"] = client_secret
        else:
            auth = httpx.BasicAuth(client_id, client_secret)

        logger.debug("Exchanging authorization code at %s", endpoints.token_url)
        try:
            response = self._client.post(
                endpoints.token_url,
                data=data,
                auth=auth,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TokenExchangeFailed(f"Token exchange failed: {exc}") from exc

        if response.is_error:
            raise TokenExchangeFailed(
                f"Token exchange failed with status {response.status_code}: "
                f"{_provider_detail(response)}",
                status_code=response.status_code,
            )

        try:
            token_data: Any = response.json()
        except ValueError as exc:
            raise TokenExchangeFailed(
                "Token endpoint returned a non-JSON response",
                status_code=response.status_code,
            ) from exc
        if not isinstance(token_data, dict):
            raise TokenExchangeFailed(
                "Token endpoint returned an unexpected JSON document",
                status_code=response.status_code,
            )

        if token_data.get("error"):
            raise TokenExchangeFailed(
                f"Token exchange rejected by provider: {_provider_detail(response)}",
                status_code=response.status_code,
            )
        access_token = token_data.get("access_token")
        if not access_token:
            raise TokenExchangeFailed(
                "Token response missing 'access_token' field",
                status_code=response.status_code,
            )
        if not isinstance(access_token, str):
            raise TokenExchangeFailed(
                "Token response has a non-string 'access_token' field",
                status_code=response.status_code,
            )

        try:
            return AccessToken(
                secret=access_token,
                token_type=str(token_data.get("token_type") or "bearer"),
                scopes=parse_scopes(token_data.get("scope")),
            )
        except ValidationError as exc:
            raise TokenExchangeFailed(
                f"Token response could not be parsed: {exc.error_count()} invalid field(s)",
                status_code=response.status_code,
            ) from exc

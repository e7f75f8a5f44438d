"""Bearer-authenticated client for the provider's REST API.

After the flow completes, the obtained :class:`~loopauth.models.AccessToken`
is used to read the authorising user's profile and repositories. Response
bodies are passed through as JSON; :class:`User` and :class:`Repo` give
typed access to the fields the CLI displays while preserving everything
else in ``model_extra``.

A failed resource request raises
:class:`~loopauth.exceptions.ResourceRequestFailed` and says nothing about
the token itself, which stays usable for other requests.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from loopauth import __version__
from loopauth.exceptions import ResourceRequestFailed
from loopauth.models import AccessToken


class User(BaseModel):
    """The authenticated user (``GET /user``)."""

    model_config = ConfigDict(extra="allow")

    login: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class Repo(BaseModel):
    """A repository visible to the user (``GET /user/repos``)."""

    model_config = ConfigDict(extra="allow")

    name: str
    html_url: str
    private: bool = False


class ResourceClient:
    """Synchronous client for bearer-authenticated GET requests.

    Must be used as a context manager (or closed explicitly) so the
    underlying :class:`httpx.Client` is released.

    Args:
        token: The access token to authenticate with.
        base_url: API root, e.g. ``https://api.github.com``.
        transport: Optional httpx transport, used by tests.
        timeout: Request timeout in seconds.

    Example::

        with ResourceClient(token, GITHUB.api_base_url) as api:
            user = api.get_user()
            repos = api.list_repos()
    """

    def __init__(
        self,
        token: AccessToken,
        base_url: str,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                **token.authorization_header(),
                "Accept": "application/vnd.github+json",
                # GitHub rejects requests without a User-Agent.
                "User-Agent": f"loopauth/{__version__}",
            },
        )

    def __enter__(self) -> ResourceClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET *path* and return the decoded JSON body.

        Raises:
            ResourceRequestFailed: On transport errors, non-2xx statuses, or
                a body that is not JSON.
        """
        try:
            response = self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise ResourceRequestFailed(f"Request to {path} failed: {exc}") from exc

        if response.is_error:
            detail = response.text.strip()[:200] or response.reason_phrase
            raise ResourceRequestFailed(
                f"Request to {path} failed with status {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ResourceRequestFailed(
                f"Response from {path} is not valid JSON",
                status_code=response.status_code,
            ) from exc

    def get_user(self) -> User:
        """Return the authenticated user's profile."""
        return User.model_validate(self.get_json("/user"))

    def list_repos(self, per_page: int = 100) -> list[Repo]:
        """Return the first page of the user's repositories."""
        data = self.get_json("/user/repos", params={"per_page": per_page})
        if not isinstance(data, list):
            raise ResourceRequestFailed("Expected a JSON list from /user/repos")
        try:
            return [Repo.model_validate(item) for item in data]
        except ValidationError as exc:
            raise ResourceRequestFailed(f"Unexpected repository payload: {exc}") from exc

"""Canonical Pydantic models shared across all loopauth modules.

The models fall into three groups:

**Flow values** -- created fresh for every authorization attempt and never
persisted:
    :class:`ClientCredentials`, :class:`ProviderEndpoints`,
    :class:`AuthorizationRequest`, :class:`RedirectResult`,
    :class:`AccessToken`, and the :class:`FlowOutcome` union of
    :class:`Success` and :class:`Failure`.

**Flow bookkeeping** -- :class:`FlowStage`, the orchestrator's state.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ListenerConfig` and :class:`GlobalConfig`.

Secret-bearing fields use :class:`pydantic.SecretStr`, so ``repr()``, ``str()``
and log formatting show ``**********``. Callers reveal a secret explicitly
with ``get_secret_value()``.
"""

from __future__ import annotations

import enum
from typing import Literal, NoReturn, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from loopauth.exceptions import LoopauthError


# --- Flow values ---


class ClientCredentials(BaseModel):
    """OAuth2 client registration supplied once at flow start.

    Example::

        creds = ClientCredentials(client_id="Iv1.abc", client_secret="s3cr3t")
        creds.client_secret.get_secret_value()  # "s3cr3t"
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: SecretStr


class ProviderEndpoints(BaseModel):
    """Authorization and token endpoints of an OAuth2 provider.

    ``client_auth`` selects how the client authenticates at the token
    endpoint: ``"basic"`` sends an HTTP Basic ``Authorization`` header,
    ``"post"`` puts ``client_id``/``client_secret`` in the form body.
    """

    model_config = ConfigDict(frozen=True)

    authorize_url: str
    token_url: str
    client_auth: Literal["basic", "post"] = "basic"


class AuthorizationRequest(BaseModel):
    """Everything needed to render the URL the user must visit.

    Created once per flow by
    :func:`~loopauth.flow.authorize.build_authorization_request`.
    """

    model_config = ConfigDict(frozen=True)

    endpoints: ProviderEndpoints
    client_id: str
    redirect_uri: str
    scopes: frozenset[str] = Field(default_factory=frozenset)
    state: str

    @property
    def url(self) -> str:
        """The fully-qualified authorization URL.

        Query parameters already present on ``authorize_url`` are kept.
        Scopes are sorted so the same request always renders the same URL.
        """
        parts = urlsplit(self.endpoints.authorize_url)
        query = parse_qsl(parts.query, keep_blank_values=True)
        query.append(("response_type", "code"))
        query.append(("client_id", self.client_id))
        query.append(("redirect_uri", self.redirect_uri))
        if self.scopes:
            query.append(("scope", " ".join(sorted(self.scopes))))
        query.append(("state", self.state))
        return urlunsplit(parts._replace(query=urlencode(query)))


class RedirectResult(BaseModel):
    """The ``code`` and ``state`` carried by the provider's redirect."""

    model_config = ConfigDict(frozen=True)

    code: SecretStr
    state: str


class AccessToken(BaseModel):
    """An access token returned by the token endpoint.

    The token value is only reachable through ``secret.get_secret_value()``.
    """

    model_config = ConfigDict(frozen=True)

    secret: SecretStr
    token_type: str = "bearer"
    scopes: frozenset[str] = Field(default_factory=frozenset)

    def authorization_header(self) -> dict[str, str]:
        """Return an ``Authorization: Bearer <token>`` header mapping."""
        return {"Authorization": f"Bearer {self.secret.get_secret_value()}"}


# --- Flow bookkeeping ---


class FlowStage(str, enum.Enum):
    """States of :class:`~loopauth.flow.orchestrator.AuthorizationCodeFlow`."""

    INIT = "init"
    BUILT_AUTHORIZATION_URL = "built_authorization_url"
    AWAITING_REDIRECT = "awaiting_redirect"
    REDIRECT_RECEIVED = "redirect_received"
    STATE_VALIDATED = "state_validated"
    EXCHANGING_TOKEN = "exchanging_token"
    SUCCESS = "success"
    FAILED = "failed"


class Success(BaseModel):
    """Terminal outcome of a flow that obtained a token."""

    model_config = ConfigDict(frozen=True)

    token: AccessToken

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> AccessToken:
        return self.token


class Failure(BaseModel):
    """Terminal outcome of a flow that failed.

    Attributes:
        error: The error that ended the flow.
        stage: The stage the flow was in when the error occurred.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    error: LoopauthError
    stage: FlowStage

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        """Re-raise the stored error."""
        raise self.error


FlowOutcome = Union[Success, Failure]


# --- Configuration ---


class ListenerConfig(BaseModel):
    """Where the loopback listener binds and how long it waits.

    ``timeout`` bounds the wait for the browser redirect; ``None`` waits
    until the flow is cancelled. ``read_timeout`` bounds reading the request
    line once a connection has been accepted.
    """

    host: str = Field(default="127.0.0.1", description="Loopback address to bind")
    port: int = Field(default=8080, ge=1, le=65535, description="Port to bind")
    timeout: Optional[float] = Field(
        default=None, gt=0, description="Seconds to wait for the redirect"
    )
    read_timeout: float = Field(
        default=10.0, gt=0, description="Seconds to wait for the request line"
    )


class GlobalConfig(BaseModel):
    """Persisted user configuration (``config.json``).

    Example::

        GlobalConfig(
            provider="github",
            listener=ListenerConfig(port=9000, timeout=300),
            client_id_source="env:MY_CLIENT_ID",
        )
    """

    provider: str = Field(default="github", description="Provider preset name")
    listener: ListenerConfig = Field(default_factory=ListenerConfig)
    scopes: Optional[list[str]] = Field(
        default=None, description="Scopes to request; None uses the provider defaults"
    )
    client_id_source: Optional[str] = Field(
        default=None,
        description="Credential source for the client id: env:VAR, file:/path, prompt",
    )
    client_secret_source: Optional[str] = Field(
        default=None,
        description="Credential source for the client secret: env:VAR, file:/path, prompt",
    )
    open_browser: bool = Field(
        default=True, description="Open the authorization URL in a browser"
    )

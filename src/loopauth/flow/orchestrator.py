"""Flow orchestrator for the Authorization Code Grant.

:class:`AuthorizationCodeFlow` sequences the other pieces of
:mod:`loopauth.flow`::

    init -> built_authorization_url -> awaiting_redirect -> redirect_received
         -> state_validated -> exchanging_token -> {success | failed}

There is one validation gate: the redirect's ``state`` must equal the state
generated for this run, otherwise the flow fails with
:class:`~loopauth.exceptions.CsrfMismatchError` and the code that came with
it is discarded unexchanged. Each stage is attempted once; running the flow
again means constructing a new instance.
"""

from __future__ import annotations

import logging
import secrets
import threading
from typing import Callable, Iterable, Optional, Protocol, Union

from pydantic import SecretStr

from loopauth.exceptions import CsrfMismatchError, LoopauthError
from loopauth.flow.authorize import build_authorization_request
from loopauth.flow.callback import ListenerState, LoopbackListener
from loopauth.flow.exchange import TokenExchangeClient
from loopauth.models import (
    AccessToken,
    AuthorizationRequest,
    ClientCredentials,
    Failure,
    FlowOutcome,
    FlowStage,
    ProviderEndpoints,
    Success,
)

logger = logging.getLogger(__name__)


class TokenExchanger(Protocol):
    """Anything that can trade an authorization code for a token."""

    def exchange(
        self, request: AuthorizationRequest, code: Union[SecretStr, str]
    ) -> AccessToken: ...


class AuthorizationCodeFlow:
    """Run one Authorization Code Grant against a provider.

    Args:
        credentials: The OAuth2 client registration.
        endpoints: The provider's authorization and token endpoints.
        scopes: Scopes to request.
        listener: The loopback listener to capture the redirect with. By
            default one is created on *host*:*port*.
        host: Listener address when *listener* is not given.
        port: Listener port when *listener* is not given.
        read_timeout: Seconds the default listener waits for the request
            line after accepting a connection.
        exchanger: Token exchange implementation. By default a
            :class:`~loopauth.flow.exchange.TokenExchangeClient` is created
            for the run and closed afterwards.
        on_authorization_url: Called with the authorization URL once the
            listener is bound; this is how the URL reaches the user.

    Example::

        flow = AuthorizationCodeFlow(creds, GITHUB.endpoints, ["user:email"],
                                     on_authorization_url=print)
        outcome = flow.run(timeout=300)
        if outcome.ok:
            token = outcome.token
    """

    def __init__(
        self,
        credentials: ClientCredentials,
        endpoints: ProviderEndpoints,
        scopes: Iterable[str] = (),
        *,
        listener: Optional[LoopbackListener] = None,
        host: str = "127.0.0.1",
        port: int = 8080,
        read_timeout: float = 10.0,
        exchanger: Optional[TokenExchanger] = None,
        on_authorization_url: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._credentials = credentials
        self._endpoints = endpoints
        self._scopes = tuple(scopes)
        self._listener = listener or LoopbackListener(host, port, read_timeout)
        self._exchanger = exchanger
        self._on_authorization_url = on_authorization_url
        self._stage = FlowStage.INIT
        self._request: Optional[AuthorizationRequest] = None

    @property
    def stage(self) -> FlowStage:
        """The current (or, after :meth:`run`, terminal) stage."""
        return self._stage

    @property
    def request(self) -> Optional[AuthorizationRequest]:
        """The authorization request built for this run, once built."""
        return self._request

    def run(
        self,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> FlowOutcome:
        """Run the flow to a terminal state.

        Args:
            timeout: Seconds to wait for the browser redirect. ``None``
                waits until *cancel* is set.
            cancel: Event that aborts the wait for the redirect.

        Returns:
            :class:`~loopauth.models.Success` with the access token, or
            :class:`~loopauth.models.Failure` with the error and the stage
            it happened in. Errors are never raised from here.

        Raises:
            RuntimeError: If this flow instance has already run.
        """
        if self._stage is not FlowStage.INIT:
            raise RuntimeError("This authorization flow has already run; start a new one")

        try:
            token = self._run(timeout, cancel)
        except LoopauthError as exc:
            failed_at = self._stage
            self._stage = FlowStage.FAILED
            logger.debug("Authorization flow failed during %s: %s", failed_at.value, exc)
            return Failure(error=exc, stage=failed_at)

        self._stage = FlowStage.SUCCESS
        logger.debug("Authorization flow succeeded (token type %s)", token.token_type)
        return Success(token=token)

    def _advance(self, stage: FlowStage) -> None:
        logger.debug("Authorization flow: %s -> %s", self._stage.value, stage.value)
        self._stage = stage

    def _run(
        self, timeout: Optional[float], cancel: Optional[threading.Event]
    ) -> AccessToken:
        request = build_authorization_request(
            self._credentials,
            self._endpoints,
            self._listener.redirect_uri,
            self._scopes,
        )
        self._request = request
        self._advance(FlowStage.BUILT_AUTHORIZATION_URL)

        try:
            if self._listener.state is ListenerState.CREATED:
                self._listener.bind()
            if self._listener.redirect_uri != request.redirect_uri:
                # Port 0 resolves to a concrete port only once bound.
                request = request.model_copy(
                    update={"redirect_uri": self._listener.redirect_uri}
                )
                self._request = request
            if self._on_authorization_url is not None:
                self._on_authorization_url(request.url)
            self._advance(FlowStage.AWAITING_REDIRECT)
            redirect = self._listener.wait(timeout=timeout, cancel=cancel)
        finally:
            self._listener.close()
        self._advance(FlowStage.REDIRECT_RECEIVED)

        if not secrets.compare_digest(
            redirect.state.encode("utf-8"), request.state.encode("utf-8")
        ):
            raise CsrfMismatchError(
                "CSRF state mismatch: the redirect did not come from this "
                "authorization request; the authorization code was discarded"
            )
        self._advance(FlowStage.STATE_VALIDATED)

        self._advance(FlowStage.EXCHANGING_TOKEN)
        if self._exchanger is not None:
            return self._exchanger.exchange(request, redirect.code)
        with TokenExchangeClient(self._credentials) as exchanger:
            return exchanger.exchange(request, redirect.code)

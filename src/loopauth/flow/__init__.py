"""The Authorization Code Grant, piece by piece.

- :func:`build_authorization_request` -- compose the URL the user visits
  and the CSRF ``state`` embedded in it.
- :class:`LoopbackListener` / :func:`parse_request_line` -- capture the
  provider's redirect on a one-shot local socket.
- :class:`TokenExchangeClient` -- trade the code for an access token.
- :class:`AuthorizationCodeFlow` -- run all of the above in order and
  return a :data:`~loopauth.models.FlowOutcome`.

Typical usage::

    from loopauth.flow import AuthorizationCodeFlow
    from loopauth.providers import GITHUB

    flow = AuthorizationCodeFlow(creds, GITHUB.endpoints, GITHUB.default_scopes,
                                 on_authorization_url=print)
    outcome = flow.run(timeout=300)
"""

from loopauth.flow.authorize import (
    build_authorization_request,
    generate_state,
    redirect_uri_for,
)
from loopauth.flow.callback import LoopbackListener, ListenerState, parse_request_line
from loopauth.flow.exchange import TokenExchangeClient
from loopauth.flow.orchestrator import AuthorizationCodeFlow, TokenExchanger

__all__ = [
    "AuthorizationCodeFlow",
    "ListenerState",
    "LoopbackListener",
    "TokenExchangeClient",
    "TokenExchanger",
    "build_authorization_request",
    "generate_state",
    "parse_request_line",
    "redirect_uri_for",
]

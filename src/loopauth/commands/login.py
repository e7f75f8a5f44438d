"""Login commands -- run the authorization flow from the terminal.

Provides two top-level commands:

* ``loopauth login`` -- run the Authorization Code Grant and print a
  summary of the obtained token.
* ``loopauth github`` -- run the flow, then use the token to show the
  authorising user's profile and repositories.

Both print the authorization URL to stderr (and open it in a browser unless
``--no-browser`` is given), wait for the provider's redirect on the loopback
listener, and report which stage failed if the flow does not succeed.

Typical workflow::

    export GITHUB_CLIENT_ID=... GITHUB_CLIENT_SECRET=...
    loopauth login --timeout 300
    loopauth github --no-browser
"""

from __future__ import annotations

import threading
import webbrowser
from typing import Optional

import typer

from loopauth.exceptions import ConfigurationError, ResourceRequestFailed
from loopauth.exit_codes import EXIT_RESOURCE_ERROR
from loopauth.models import AccessToken, Failure, FlowStage, ListenerConfig
from loopauth.output import (
    authorization_prompt,
    debug,
    error,
    format_response,
    info,
    print_table,
    success,
    suggest,
)
from loopauth.providers import Provider

STAGE_LABELS: dict[FlowStage, str] = {
    FlowStage.INIT: "building the authorization URL",
    FlowStage.BUILT_AUTHORIZATION_URL: "starting the loopback listener",
    FlowStage.AWAITING_REDIRECT: "waiting for the provider redirect",
    FlowStage.REDIRECT_RECEIVED: "validating the redirect state",
    FlowStage.STATE_VALIDATED: "validating the redirect state",
    FlowStage.EXCHANGING_TOKEN: "exchanging the authorization code",
}


def _mask(secret: str) -> str:
    """Show only enough of a token to recognise it."""
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}{'*' * 8}{secret[-2:]}"


def _open_browser(url: str) -> None:
    # webbrowser.open can block on some platforms; keep it off the flow thread.
    threading.Thread(target=webbrowser.open, args=(url,), daemon=True).start()


def authorize(
    provider_name: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
    timeout: Optional[float] = None,
    scopes: Optional[list[str]] = None,
    open_browser: Optional[bool] = None,
) -> tuple[Provider, AccessToken]:
    """Resolve configuration, run one flow, and return the token.

    Arguments left as ``None`` fall back to the environment and the config
    file (see :func:`~loopauth.config.resolve_listener`).

    Raises:
        typer.Exit: If configuration cannot be resolved or the flow fails;
            the cause (and failing stage) is printed first.
    """
    from loopauth.config import load_client_credentials, load_global_config, resolve_listener
    from loopauth.flow import AuthorizationCodeFlow
    from loopauth.providers import get_provider

    try:
        config = load_global_config()
        provider = get_provider(provider_name or config.provider)
        listener: ListenerConfig = resolve_listener(config, host, port, timeout)
        credentials = load_client_credentials(config, provider)
    except ConfigurationError as exc:
        error(f"Configuration error: {exc}")
        raise typer.Exit(code=exc.exit_code) from None
    requested = scopes or config.scopes or list(provider.default_scopes)
    browser = config.open_browser if open_browser is None else open_browser

    def present(url: str) -> None:
        authorization_prompt(url)
        if browser:
            _open_browser(url)
        if listener.timeout is not None:
            info(f"Waiting up to {listener.timeout:g}s for the redirect on {listener.host}:{listener.port}...")
        else:
            info(f"Waiting for the redirect on {listener.host}:{listener.port} (Ctrl-C to abort)...")

    debug(f"Provider: {provider.name}, scopes: {' '.join(requested)}")
    flow = AuthorizationCodeFlow(
        credentials,
        provider.endpoints,
        requested,
        host=listener.host,
        port=listener.port,
        read_timeout=listener.read_timeout,
        on_authorization_url=present,
    )
    outcome = flow.run(timeout=listener.timeout)

    if isinstance(outcome, Failure):
        stage = STAGE_LABELS.get(outcome.stage, outcome.stage.value)
        error(f"Authorization failed while {stage}: {outcome.error}")
        suggest("Run the command again to start a new authorization.")
        raise typer.Exit(code=outcome.error.exit_code)

    return provider, outcome.token


def login_command(
    provider: Optional[str] = typer.Option(
        None, "--provider", help="Provider preset (default from config: github)."
    ),
    host: Optional[str] = typer.Option(
        None, "--host", help="Loopback address to listen on."
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="Loopback port; must match the registered redirect URL."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the browser redirect."
    ),
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request (repeatable)."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the URL without opening a browser."
    ),
    show_token: bool = typer.Option(
        False, "--show-token", help="Print the full access token."
    ),
) -> None:
    """Run the authorization flow and print a token summary.

    The token is masked unless ``--show-token`` is given.

    Example::

        loopauth login
        loopauth login --port 9000 --timeout 120 --scope read:user
        loopauth --json login --show-token
    """
    _, token = authorize(
        provider, host, port, timeout, scope, False if no_browser else None
    )
    secret = token.secret.get_secret_value()
    success("Authorization complete.")
    print_table(
        ["field", "value"],
        [
            ["token_type", token.token_type],
            ["scopes", " ".join(sorted(token.scopes))],
            ["access_token", secret if show_token else _mask(secret)],
        ],
        title="Access token",
    )


def github_command(
    host: Optional[str] = typer.Option(
        None, "--host", help="Loopback address to listen on."
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="Loopback port; must match the registered redirect URL."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for the browser redirect."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the URL without opening a browser."
    ),
) -> None:
    """Authorize with GitHub, then show your profile and repositories.

    A failing resource request is reported and the next one is still
    attempted; the command exits non-zero if any of them failed.

    Example::

        loopauth github --timeout 300
    """
    from loopauth.resources import ResourceClient

    provider, token = authorize(
        "github", host, port, timeout, None, False if no_browser else None
    )
    success("Authorization complete.")

    failed = False
    with ResourceClient(token, provider.api_base_url) as api:
        try:
            user = api.get_user()
            info("User details:")
            format_response(user.model_dump(mode="json"))
        except ResourceRequestFailed as exc:
            error(f"Failed to fetch user details: {exc}")
            failed = True

        try:
            repos = api.list_repos()
            print_table(
                ["name", "url", "private"],
                [[r.name, r.html_url, str(r.private).lower()] for r in repos],
                title="Repositories",
            )
        except ResourceRequestFailed as exc:
            error(f"Failed to fetch user repositories: {exc}")
            failed = True

    if failed:
        raise typer.Exit(code=EXIT_RESOURCE_ERROR)

"""loopauth -- OAuth2 Authorization Code Grant for terminal applications.

This package runs the user-delegated Authorization Code flow against a
third-party provider (GitHub out of the box) without a public callback URL.
A one-shot loopback listener on ``127.0.0.1`` captures the provider's
redirect, the anti-forgery ``state`` is checked, and the code is exchanged
for an access token.

Typical usage::

    loopauth login              # run the flow, print a token summary
    loopauth github             # run the flow, then show user + repos

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models for credentials, requests, tokens and outcomes.
    flow: The authorization URL builder, loopback listener, token exchange
        client and flow orchestrator.
    providers: Endpoint presets for supported providers.
    resources: Bearer-authenticated client for the provider's REST API.
    config: XDG-aware configuration and credential source resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"

"""Provider presets.

A :class:`Provider` bundles the constants that differ between OAuth2
providers: the endpoints, the scopes requested when the user configures
none, the environment variables the client credentials are read from by
default, and the REST API base used after the flow completes.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from loopauth.exceptions import ConfigurationError
from loopauth.models import ProviderEndpoints


class Provider(BaseModel):
    """Static description of an OAuth2 provider."""

    model_config = ConfigDict(frozen=True)

    name: str
    endpoints: ProviderEndpoints
    default_scopes: tuple[str, ...] = ()
    client_id_env: str
    client_secret_env: str
    api_base_url: str


GITHUB = Provider(
    name="github",
    endpoints=ProviderEndpoints(
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
    ),
    default_scopes=("public_repo", "user:email"),
    client_id_env="GITHUB_CLIENT_ID",
    client_secret_env="GITHUB_CLIENT_SECRET",
    api_base_url="https://api.github.com",
)

PROVIDERS: dict[str, Provider] = {GITHUB.name: GITHUB}


def get_provider(name: str) -> Provider:
    """Look up a provider preset by name.

    Raises:
        ConfigurationError: If no preset is registered under *name*.
    """
    provider = PROVIDERS.get(name.lower())
    if provider is None:
        available = ", ".join(sorted(PROVIDERS))
        raise ConfigurationError(
            f"Unknown provider '{name}'. Available providers: {available}"
        )
    return provider

"""Tests for the shared Pydantic models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from loopauth.exceptions import CsrfMismatchError
from loopauth.models import (
    AccessToken,
    AuthorizationRequest,
    ClientCredentials,
    Failure,
    FlowStage,
    GlobalConfig,
    ListenerConfig,
    ProviderEndpoints,
    RedirectResult,
    Success,
)


class TestSecretsAreHidden:
    def test_client_secret(self) -> None:
        creds = ClientCredentials(client_id="id", client_secret="hunter2")
        assert "hunter2" not in repr(creds)
        assert "hunter2" not in str(creds)
        assert creds.client_secret.get_secret_value() == "hunter2"

    def test_redirect_code(self) -> None:
        result = RedirectResult(code="the-code", state="s")
        assert "the-code" not in repr(result)

    def test_access_token(self) -> None:
        token = AccessToken(secret="gho_abc")
        assert "gho_abc" not in repr(token)
        assert "gho_abc" not in str(token.model_dump())
        assert token.authorization_header() == {"Authorization": "Bearer gho_abc"}

    def test_frozen(self) -> None:
        creds = ClientCredentials(client_id="id", client_secret="s")
        with pytest.raises(ValidationError):
            creds.client_id = "other"  # type: ignore[misc]


class TestAuthorizationRequestUrl:
    def test_scopes_sorted_and_space_joined(self) -> None:
        request = AuthorizationRequest(
            endpoints=ProviderEndpoints(
                authorize_url="https://example.com/auth", token_url="https://example.com/token"
            ),
            client_id="cid",
            redirect_uri="http://127.0.0.1:8080",
            scopes=frozenset({"user:email", "public_repo"}),
            state="st",
        )
        assert request.url == (
            "https://example.com/auth?response_type=code&client_id=cid"
            "&redirect_uri=http%3A%2F%2F127.0.0.1%3A8080"
            "&scope=public_repo+user%3Aemail&state=st"
        )

    def test_default_client_auth_is_basic(self) -> None:
        endpoints = ProviderEndpoints(authorize_url="https://a", token_url="https://b")
        assert endpoints.client_auth == "basic"

    def test_unknown_client_auth_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProviderEndpoints(
                authorize_url="https://a", token_url="https://b", client_auth="jwt"  # type: ignore[arg-type]
            )


class TestOutcomes:
    def test_success(self) -> None:
        token = AccessToken(secret="t")
        outcome = Success(token=token)
        assert outcome.ok
        assert outcome.unwrap() is token

    def test_failure_unwrap_reraises(self) -> None:
        error = CsrfMismatchError("mismatch")
        outcome = Failure(error=error, stage=FlowStage.REDIRECT_RECEIVED)
        assert not outcome.ok
        with pytest.raises(CsrfMismatchError) as exc_info:
            outcome.unwrap()
        assert exc_info.value is error

    def test_stage_values(self) -> None:
        assert FlowStage.EXCHANGING_TOKEN.value == "exchanging_token"
        assert FlowStage("awaiting_redirect") is FlowStage.AWAITING_REDIRECT


class TestConfigModels:
    def test_listener_defaults(self) -> None:
        listener = ListenerConfig()
        assert listener.host == "127.0.0.1"
        assert listener.port == 8080
        assert listener.timeout is None

    @pytest.mark.parametrize("port", [0, 70000, -1])
    def test_listener_port_range(self, port: int) -> None:
        with pytest.raises(ValidationError):
            ListenerConfig(port=port)

    def test_listener_timeout_positive(self) -> None:
        with pytest.raises(ValidationError):
            ListenerConfig(timeout=0)

    def test_global_defaults(self) -> None:
        config = GlobalConfig()
        assert config.provider == "github"
        assert config.scopes is None
        assert config.open_browser is True

    def test_global_round_trip(self) -> None:
        config = GlobalConfig(
            listener=ListenerConfig(port=9000, timeout=120),
            scopes=["repo"],
            client_id_source="env:MY_ID",
        )
        restored = GlobalConfig.model_validate(config.model_dump(mode="json"))
        assert restored == config

"""GitLab sign-in, for gitlab.com or a self-managed instance."""

from typing import Any, Dict, Mapping, Optional

from ..config import BridgeConfig, ProviderConfig
from ..errors import UpstreamExchangeError
from ..models import OAuthResponse, RedirectInfo
from ..orchestrator import HandshakeOrchestrator
from ..strategy import (
    OAuth2Endpoints,
    OAuth2Strategy,
    execute_frame_handler_strategy,
    execute_redirect_strategy,
    execute_refresh_strategy,
)
from ..token_issuer import TokenIssuer
from ..transform import transform_oauth_response

DEFAULT_BASE_URL = "https://gitlab.com"


class GitlabAuthProvider:
    provider_id = "gitlab"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        callback_url: str,
        base_url: str = DEFAULT_BASE_URL,
        scope: str = "",
        timeout: float = 10.0,
    ):
        base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._strategy = OAuth2Strategy(
            provider_id=self.provider_id,
            client_id=client_id,
            client_secret=client_secret,
            callback_url=callback_url,
            endpoints=OAuth2Endpoints(
                authorization_url=f"{base_url}/oauth/authorize",
                token_url=f"{base_url}/oauth/token",
                profile_url=f"{base_url}/api/v4/user",
                default_scope="read_user",
            ),
            scope=scope,
            timeout=timeout,
        )

    @staticmethod
    def parse_profile(data: Mapping[str, Any]) -> Dict[str, Any]:
        """Map a GitLab ``/api/v4/user`` payload to a raw provider payload."""
        if data.get("id") is None:
            raise UpstreamExchangeError("GitLab profile has no id")

        # gitlab ids are numeric (123)
        return {
            "id": data["id"],
            "username": data.get("username"),
            "provider": "gitlab",
            "display_name": data.get("name"),
            "emails": [{"value": data["email"]}] if data.get("email") else [],
            "avatar_url": data.get("avatar_url"),
        }

    def start(self, request, options: Mapping[str, str]) -> RedirectInfo:
        return execute_redirect_strategy(request, self._strategy, options)

    def complete(self, request) -> OAuthResponse:
        access_token, data, params = execute_frame_handler_strategy(request, self._strategy)
        return transform_oauth_response(access_token, self.parse_profile(data), params)

    def refresh(self, refresh_token: str, scope: Optional[str] = None) -> OAuthResponse:
        access_token, data, params = execute_refresh_strategy(
            self._strategy, refresh_token, scope
        )
        return transform_oauth_response(access_token, self.parse_profile(data), params)


def create_gitlab_provider(
    config: BridgeConfig,
    provider_config: ProviderConfig,
    token_issuer: TokenIssuer,
) -> HandshakeOrchestrator:
    provider_id = GitlabAuthProvider.provider_id
    provider = GitlabAuthProvider(
        client_id=provider_config.client_id,
        client_secret=provider_config.client_secret,
        callback_url=config.callback_url(provider_id),
        base_url=provider_config.audience or DEFAULT_BASE_URL,
        scope=provider_config.scope,
        timeout=config.http_timeout,
    )

    disable_refresh = provider_config.disable_refresh
    return HandshakeOrchestrator(
        provider,
        provider_id=provider_id,
        token_issuer=token_issuer,
        disable_refresh=True if disable_refresh is None else disable_refresh,
    )

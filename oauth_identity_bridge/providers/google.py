"""
Google sign-in over OpenID Connect.

Google issues refresh tokens only when offline access is requested with
forced consent, so both parameters are always sent.
"""

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

GOOGLE_ENDPOINTS = OAuth2Endpoints(
    authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    profile_url="https://openidconnect.googleapis.com/v1/userinfo",
    default_scope="openid email profile",
    authorize_params={"access_type": "offline", "prompt": "consent"},
)


class GoogleAuthProvider:
    provider_id = "google"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        callback_url: str,
        scope: str = "",
        timeout: float = 10.0,
    ):
        self._strategy = OAuth2Strategy(
            provider_id=self.provider_id,
            client_id=client_id,
            client_secret=client_secret,
            callback_url=callback_url,
            endpoints=GOOGLE_ENDPOINTS,
            scope=scope,
            timeout=timeout,
        )

    @staticmethod
    def parse_profile(data: Mapping[str, Any]) -> Dict[str, Any]:
        """Map an OIDC userinfo payload to a raw provider payload."""
        if not data.get("sub"):
            raise UpstreamExchangeError("Google userinfo has no subject")

        return {
            "id": data["sub"],
            "provider": "google",
            "display_name": data.get("name"),
            "emails": [{"value": data["email"]}] if data.get("email") else [],
            "avatar_url": data.get("picture"),
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


def create_google_provider(
    config: BridgeConfig,
    provider_config: ProviderConfig,
    token_issuer: TokenIssuer,
) -> HandshakeOrchestrator:
    provider_id = GoogleAuthProvider.provider_id
    provider = GoogleAuthProvider(
        client_id=provider_config.client_id,
        client_secret=provider_config.client_secret,
        callback_url=config.callback_url(provider_id),
        scope=provider_config.scope,
        timeout=config.http_timeout,
    )

    return HandshakeOrchestrator(
        provider,
        provider_id=provider_id,
        token_issuer=token_issuer,
        disable_refresh=bool(provider_config.disable_refresh),
    )

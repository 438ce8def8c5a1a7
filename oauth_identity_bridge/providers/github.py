"""
GitHub sign-in.

Setting ``AUTH_GITHUB_AUDIENCE`` to a GitHub Enterprise Server URL switches
both the OAuth endpoints and the REST API to that host.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

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

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://github.com"
PUBLIC_API_URL = "https://api.github.com"


class GithubAuthProvider:
    provider_id = "github"

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
        if base_url == DEFAULT_BASE_URL:
            api_url = PUBLIC_API_URL
        else:
            api_url = f"{base_url}/api/v3"

        self._emails_url = f"{api_url}/user/emails"
        self._strategy = OAuth2Strategy(
            provider_id=self.provider_id,
            client_id=client_id,
            client_secret=client_secret,
            callback_url=callback_url,
            endpoints=OAuth2Endpoints(
                authorization_url=f"{base_url}/login/oauth/authorize",
                token_url=f"{base_url}/login/oauth/access_token",
                profile_url=f"{api_url}/user",
                default_scope="read:user user:email",
                profile_headers={"Accept": "application/vnd.github+json"},
            ),
            scope=scope,
            timeout=timeout,
        )

    @staticmethod
    def parse_profile(data: Mapping[str, Any]) -> Dict[str, Any]:
        """Map a GitHub ``/user`` payload to a raw provider payload."""
        if data.get("id") is None:
            raise UpstreamExchangeError("GitHub profile has no id")

        # email is null unless the user made it public
        return {
            "id": data["id"],
            "username": data.get("login"),
            "provider": "github",
            "display_name": data.get("name"),
            "emails": [{"value": data["email"]}] if data.get("email") else [],
            "avatar_url": data.get("avatar_url"),
        }

    @staticmethod
    def primary_email(emails: List[Mapping[str, Any]]) -> Optional[str]:
        """Pick the primary verified address from a ``/user/emails`` payload."""
        verified = [
            entry for entry in emails
            if isinstance(entry, dict) and entry.get("verified")
        ]
        for entry in verified:
            if entry.get("primary"):
                return entry.get("email")
        return verified[0].get("email") if verified else None

    def _with_private_email(self, access_token: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if data.get("email"):
            return data

        try:
            emails = self._strategy.fetch_json(self._emails_url, access_token)
        except UpstreamExchangeError as e:
            # missing user:email grant; the login continues on the native id
            logger.warning(f"Could not read GitHub email addresses: {e}")
            return data
        if not isinstance(emails, list):
            logger.warning("GitHub returned a malformed email list")
            return data

        return {**data, "email": self.primary_email(emails)}

    def start(self, request, options: Mapping[str, str]) -> RedirectInfo:
        return execute_redirect_strategy(request, self._strategy, options)

    def complete(self, request) -> OAuthResponse:
        access_token, data, params = execute_frame_handler_strategy(request, self._strategy)
        data = self._with_private_email(access_token, data)
        return transform_oauth_response(access_token, self.parse_profile(data), params)

    def refresh(self, refresh_token: str, scope: Optional[str] = None) -> OAuthResponse:
        access_token, data, params = execute_refresh_strategy(
            self._strategy, refresh_token, scope
        )
        data = self._with_private_email(access_token, data)
        return transform_oauth_response(access_token, self.parse_profile(data), params)


def create_github_provider(
    config: BridgeConfig,
    provider_config: ProviderConfig,
    token_issuer: TokenIssuer,
) -> HandshakeOrchestrator:
    provider_id = GithubAuthProvider.provider_id
    provider = GithubAuthProvider(
        client_id=provider_config.client_id,
        client_secret=provider_config.client_secret,
        callback_url=config.callback_url(provider_id),
        base_url=provider_config.audience or DEFAULT_BASE_URL,
        scope=provider_config.scope,
        timeout=config.http_timeout,
    )

    # OAuth apps issue non-expiring tokens without a refresh token
    disable_refresh = provider_config.disable_refresh
    return HandshakeOrchestrator(
        provider,
        provider_id=provider_id,
        token_issuer=token_issuer,
        disable_refresh=True if disable_refresh is None else disable_refresh,
    )

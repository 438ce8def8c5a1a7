"""
Authorization-code handshake mechanics shared by all provider adapters.

An ``OAuth2Strategy`` holds one provider's client registration and endpoint
URLs. The ``execute_*`` functions run the two legs of the handshake against
a strategy:

- redirect: build the provider's authorization URL with a fresh state nonce
- frame handler: verify the echoed state, exchange the code and fetch the
  user's profile

No per-handshake data is kept on the strategy. The nonce issued at redirect
time travels to the callback in a cookie set by the web layer.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import OAuth2Client

from .errors import ConfigurationError, StateMismatchError, UpstreamExchangeError
from .models import HandshakeParams, RedirectInfo, mask_secret

logger = logging.getLogger(__name__)

# Authorization parameters owned by the strategy, plus the argument names of
# OAuth2Client.create_authorization_url that options must not shadow
RESERVED_AUTHORIZE_PARAMS = (
    "response_type",
    "client_id",
    "redirect_uri",
    "state",
    "url",
    "code_verifier",
)


def nonce_cookie_name(provider_id: str) -> str:
    return f"{provider_id}-nonce"


@dataclass(frozen=True)
class OAuth2Endpoints:
    """Where a provider's authorization server and user API live."""

    authorization_url: str
    token_url: str
    profile_url: str
    default_scope: str = ""
    authorize_params: Dict[str, str] = field(default_factory=dict)
    profile_headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class OAuth2Strategy:
    """A configured authorization-code client for one provider."""

    provider_id: str
    client_id: str
    client_secret: str = field(repr=False)
    callback_url: str
    endpoints: OAuth2Endpoints
    scope: str = ""
    timeout: float = 10.0

    def __post_init__(self):
        missing = [
            name
            for name in ("client_id", "client_secret", "callback_url")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"OAuth provider '{self.provider_id}' is missing {', '.join(missing)}"
            )

    @property
    def effective_scope(self) -> str:
        return self.scope or self.endpoints.default_scope

    def create_client(self, scope: Optional[str] = None) -> OAuth2Client:
        """Create an authlib client that posts credentials in the token request body."""
        return OAuth2Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=scope or self.effective_scope,
            redirect_uri=self.callback_url,
            token_endpoint_auth_method="client_secret_post",
            timeout=self.timeout,
        )

    def exchange_code(self, code: str) -> Mapping[str, Any]:
        """Exchange an authorization code at the provider's token endpoint."""
        try:
            with self.create_client() as client:
                token = client.fetch_token(
                    self.endpoints.token_url,
                    code=code,
                    grant_type="authorization_code",
                )
        except AuthlibBaseError as e:
            raise UpstreamExchangeError(
                f"{self.provider_id} rejected the authorization code: {e}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamExchangeError(
                f"Token exchange with {self.provider_id} failed: {e}"
            ) from e
        return self._check_token(token)

    def refresh(self, refresh_token: str, scope: Optional[str] = None) -> Mapping[str, Any]:
        """Run a refresh-token grant."""
        try:
            with self.create_client(scope) as client:
                token = client.refresh_token(
                    self.endpoints.token_url,
                    refresh_token=refresh_token,
                )
        except AuthlibBaseError as e:
            raise UpstreamExchangeError(
                f"{self.provider_id} rejected the refresh token: {e}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamExchangeError(
                f"Token refresh with {self.provider_id} failed: {e}"
            ) from e
        return self._check_token(token)

    def _check_token(self, token: Mapping[str, Any]) -> Mapping[str, Any]:
        if not token or not token.get("access_token"):
            raise UpstreamExchangeError(
                f"{self.provider_id} token response carries no access token"
            )
        logger.debug(
            f"Token response from {self.provider_id}: "
            f"access_token={mask_secret(token.get('access_token'))}, "
            f"scope={token.get('scope')}, expires_in={token.get('expires_in')}"
        )
        return token

    def fetch_json(self, url: str, access_token: str) -> Any:
        """GET a provider API resource on behalf of the user."""
        headers = {
            "Accept": "application/json",
            **self.endpoints.profile_headers,
            "Authorization": f"Bearer {access_token}",
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.get(url, headers=headers)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamExchangeError(
                f"Request to {self.provider_id} ({url}) failed: {e}"
            ) from e

    def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """Fetch the user's profile with the access token."""
        profile = self.fetch_json(self.endpoints.profile_url, access_token)
        if not isinstance(profile, dict):
            raise UpstreamExchangeError(
                f"{self.provider_id} returned a malformed profile payload"
            )
        return profile


def execute_redirect_strategy(
    request, strategy: OAuth2Strategy, options: Optional[Mapping[str, str]] = None
) -> RedirectInfo:
    """
    Build the redirect that starts a handshake.

    Args:
        request: Incoming request (unused, kept for symmetry with the callback leg)
        strategy: Configured provider strategy
        options: Caller options; ``scope`` overrides the default scope and the
            rest are passed to the provider as extra authorization parameters

    Returns:
        RedirectInfo whose nonce must be stored in the nonce cookie
    """
    options = dict(options or {})
    scope = options.pop("scope", None) or strategy.effective_scope

    extra = {**strategy.endpoints.authorize_params}
    for key, value in options.items():
        if key in RESERVED_AUTHORIZE_PARAMS:
            logger.debug(f"Ignoring reserved authorization parameter: {key}")
            continue
        extra[key] = value

    nonce = secrets.token_urlsafe(32)
    with strategy.create_client(scope) as client:
        url, _ = client.create_authorization_url(
            strategy.endpoints.authorization_url,
            state=nonce,
            scope=scope,
            **extra,
        )

    logger.debug(f"Redirecting to {strategy.provider_id}, state={mask_secret(nonce)}")
    return RedirectInfo(url=url, status=302, nonce=nonce)


def verify_state(request, provider_id: str) -> None:
    """Check the callback's state against the nonce cookie."""
    state = request.args.get("state")
    nonce = request.cookies.get(nonce_cookie_name(provider_id))

    # compare_digest rejects non-ASCII str, so compare the encoded values
    if not state or not nonce or not hmac.compare_digest(
        state.encode("utf-8"), nonce.encode("utf-8")
    ):
        logger.warning(
            f"OAuth state mismatch for {provider_id}: "
            f"state={mask_secret(state)}, nonce={mask_secret(nonce)}"
        )
        raise StateMismatchError("Auth response state does not match the issued nonce")


def execute_frame_handler_strategy(
    request, strategy: OAuth2Strategy
) -> Tuple[str, Dict[str, Any], HandshakeParams]:
    """
    Complete a handshake from the provider's callback.

    Args:
        request: Callback request carrying ``state`` and ``code`` (or ``error``)
        strategy: Configured provider strategy

    Returns:
        Tuple of (access_token, raw profile JSON, handshake params)

    Raises:
        StateMismatchError: The state does not match the nonce cookie
        UpstreamExchangeError: The provider refused or a fetch failed
    """
    verify_state(request, strategy.provider_id)

    error = request.args.get("error")
    if error:
        description = request.args.get("error_description", "Unknown error")
        raise UpstreamExchangeError(f"{strategy.provider_id} returned {error}: {description}")

    code = request.args.get("code")
    if not code:
        raise UpstreamExchangeError("No authorization code received")

    token = strategy.exchange_code(code)
    access_token = token["access_token"]
    profile = strategy.fetch_profile(access_token)
    return access_token, profile, HandshakeParams.from_token_response(token)


def execute_refresh_strategy(
    strategy: OAuth2Strategy, refresh_token: str, scope: Optional[str] = None
) -> Tuple[str, Dict[str, Any], HandshakeParams]:
    """Refresh the access token and re-fetch the profile."""
    token = strategy.refresh(refresh_token, scope)
    access_token = token["access_token"]
    profile = strategy.fetch_profile(access_token)
    return access_token, profile, HandshakeParams.from_token_response(token)

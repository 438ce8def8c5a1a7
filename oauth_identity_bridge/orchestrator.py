"""
Provider-agnostic login orchestration.

A ``HandshakeOrchestrator`` wraps any adapter that can ``start`` and
``complete`` a handshake and adds session token issuance on top.
"""

import logging
from typing import Mapping, Optional, Protocol, runtime_checkable

from .errors import AuthenticationError, ConfigurationError, IssuanceError
from .models import OAuthResponse, RedirectInfo
from .token_issuer import TokenIssuer

logger = logging.getLogger(__name__)


class OAuthHandlers(Protocol):
    """The capability every provider adapter offers."""

    def start(self, request, options: Mapping[str, str]) -> RedirectInfo:
        ...

    def complete(self, request) -> OAuthResponse:
        ...


@runtime_checkable
class RefreshableHandlers(Protocol):
    """Adapters that can also run a refresh-token grant."""

    def refresh(self, refresh_token: str, scope: Optional[str] = None) -> OAuthResponse:
        ...


class HandshakeOrchestrator:
    """Drive one provider's login legs and issue session tokens."""

    def __init__(
        self,
        handlers: OAuthHandlers,
        provider_id: str,
        token_issuer: TokenIssuer,
        disable_refresh: bool = False,
    ):
        if not disable_refresh and not isinstance(handlers, RefreshableHandlers):
            raise ConfigurationError(
                f"Provider '{provider_id}' cannot refresh, set disable_refresh"
            )
        self.handlers = handlers
        self.provider_id = provider_id
        self.token_issuer = token_issuer
        self.disable_refresh = disable_refresh

    def begin_login(self, request, options: Optional[Mapping[str, str]] = None) -> RedirectInfo:
        """Return the redirect that sends the browser to the provider."""
        logger.info(f"Initiating {self.provider_id} login, redirecting to provider")
        return self.handlers.start(request, dict(options or {}))

    def complete_login(self, request) -> OAuthResponse:
        """
        Finish the handshake and attach a session token to the identity.

        Raises:
            AuthenticationError: The handshake failed; no token was issued
            IssuanceError: The user was identified but the token issuer failed
        """
        response = self.handlers.complete(request)
        self._issue_token(response)
        logger.info(
            f"User {response.backstage_identity.id} authenticated via {self.provider_id}"
        )
        return response

    def refresh_login(self, refresh_token: str, scope: Optional[str] = None) -> OAuthResponse:
        """Obtain a fresh access token and session token from a refresh token."""
        if self.disable_refresh:
            raise AuthenticationError(
                f"Refresh is not supported for provider '{self.provider_id}'"
            )
        if not refresh_token:
            raise AuthenticationError("Missing refresh token")

        response = self.handlers.refresh(refresh_token, scope)
        self._issue_token(response)
        logger.info(f"Refreshed {self.provider_id} session for {response.backstage_identity.id}")
        return response

    def _issue_token(self, response: OAuthResponse) -> None:
        identity = response.backstage_identity
        try:
            identity.id_token = self.token_issuer.issue_token(
                identity.id, claims={"provider": self.provider_id}
            )
        except Exception as e:
            logger.error(f"Token issuance failed for {identity.id}: {e}")
            raise IssuanceError(f"Failed to issue session token: {e}") from e

"""
Configuration management for the OAuth identity bridge.

This module handles loading the per-provider client credentials, the
session token signing settings and the web-facing URLs from environment
variables.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ProviderConfig:
    """Client registration with a single identity provider."""

    client_id: str = ""
    client_secret: str = ""

    # Provider base URL, e.g. a self-hosted GitLab. Empty means public instance.
    audience: str = ""

    # Empty means the provider's default scope
    scope: str = ""

    # None means the provider's default
    disable_refresh: Optional[bool] = None

    @classmethod
    def from_env(cls, provider_id: str) -> "ProviderConfig":
        """
        Create configuration from ``AUTH_<PROVIDER>_*`` environment variables.

        Args:
            provider_id: Provider name, e.g. "gitlab"
        """
        prefix = f"AUTH_{provider_id.upper()}_"
        return cls(
            client_id=os.environ.get(f"{prefix}CLIENT_ID", ""),
            client_secret=os.environ.get(f"{prefix}CLIENT_SECRET", ""),
            audience=os.environ.get(f"{prefix}AUDIENCE", ""),
            scope=os.environ.get(f"{prefix}SCOPE", ""),
            disable_refresh=_env_flag(f"{prefix}DISABLE_REFRESH"),
        )


@dataclass
class JwtConfig:
    """Session token signing configuration."""

    private_key_file: str = "/app/jwt/jwt_key"
    public_key_file: str = "/app/jwt/jwt_key.pub"
    algorithm: str = "RS256"
    issuer: str = "oauth-identity-bridge"
    audience: str = "oauth-identity-bridge"
    token_expiry_hours: int = 1

    @classmethod
    def from_env(cls) -> "JwtConfig":
        """Create configuration from environment variables."""
        return cls(
            private_key_file=os.environ.get(
                "JWT_PRIVATE_KEY_FILE", "/app/jwt/jwt_key"
            ),
            public_key_file=os.environ.get(
                "JWT_PUBLIC_KEY_FILE", "/app/jwt/jwt_key.pub"
            ),
            algorithm=os.environ.get("JWT_ALGORITHM", "RS256"),
            issuer=os.environ.get("JWT_ISSUER", "oauth-identity-bridge"),
            audience=os.environ.get("JWT_AUDIENCE", "oauth-identity-bridge"),
            token_expiry_hours=int(os.environ.get("JWT_TOKEN_EXPIRY_HOURS", "1")),
        )


@dataclass
class BridgeConfig:
    """Overall bridge configuration."""

    # Public URL of the auth routes; callback URLs are built from it
    base_url: str = "http://localhost:5000/auth"

    # Origin of the frontend that opened the login popup
    app_origin: str = "http://localhost:3000"

    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    jwt: JwtConfig = field(default_factory=JwtConfig)

    # Timeout in seconds for token and profile requests
    http_timeout: float = 10.0

    @property
    def secure_cookies(self) -> bool:
        return self.base_url.startswith("https://")

    def callback_url(self, provider_id: str) -> str:
        """Return the provider's redirect URI."""
        return f"{self.base_url.rstrip('/')}/{provider_id}/handler/frame"

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """Create configuration from environment variables."""
        provider_ids = [
            name.strip().lower()
            for name in os.environ.get("AUTH_PROVIDERS", "").split(",")
            if name.strip()
        ]
        return cls(
            base_url=os.environ.get("AUTH_BASE_URL", "http://localhost:5000/auth"),
            app_origin=os.environ.get("AUTH_APP_ORIGIN", "http://localhost:3000"),
            providers={
                provider_id: ProviderConfig.from_env(provider_id)
                for provider_id in provider_ids
            },
            jwt=JwtConfig.from_env(),
            http_timeout=float(os.environ.get("AUTH_HTTP_TIMEOUT", "10")),
        )

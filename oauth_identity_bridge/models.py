"""
Data models for the OAuth handshake.

Every object here is created fresh for a single handshake attempt and handed
straight to the caller; nothing is persisted.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

# Provider JSON mapped to: id, username, provider, display_name, emails, avatar_url
RawProviderPayload = Mapping[str, Any]


def mask_secret(value: Optional[str], visible: int = 8) -> str:
    """Shorten a secret for log output."""
    if not value:
        return "None"
    return f"{value[:visible]}..."


def _drop_none(data: dict) -> dict:
    return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class CanonicalProfile:
    """Provider-independent user attributes."""

    id: str
    provider: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None
    emails: Optional[List[str]] = None
    photos: Optional[List[str]] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "provider": self.provider,
            "username": self.username,
            "display_name": self.display_name,
            "emails": list(self.emails) if self.emails else None,
            "photos": list(self.photos) if self.photos else None,
        })


@dataclass(frozen=True)
class ProfileInfo:
    """Profile exposed to the frontend after login."""

    email: Optional[str] = None
    picture: Optional[str] = None
    display_name: Optional[str] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "email": self.email,
            "picture": self.picture,
            "display_name": self.display_name,
        })


@dataclass(frozen=True)
class HandshakeParams:
    """Session metadata returned by the provider's token endpoint."""

    scope: Optional[str] = None
    expires_in_seconds: Optional[int] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_token_response(cls, token: Mapping[str, Any]) -> "HandshakeParams":
        """Pick the handshake parameters out of a token endpoint response."""
        expires_in = token.get("expires_in")
        scope = token.get("scope")
        if isinstance(scope, (list, tuple)):
            scope = " ".join(scope)
        return cls(
            scope=scope,
            expires_in_seconds=int(expires_in) if expires_in is not None else None,
            id_token=token.get("id_token"),
            refresh_token=token.get("refresh_token"),
        )


@dataclass
class ProviderInfo:
    """Credential material returned by the provider. Never log in full."""

    access_token: str = field(repr=False)
    scope: Optional[str] = None
    expires_in_seconds: Optional[int] = None
    id_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        # refresh_token stays server side, it travels in an HttpOnly cookie
        return _drop_none({
            "access_token": self.access_token,
            "scope": self.scope,
            "expires_in_seconds": self.expires_in_seconds,
            "id_token": self.id_token,
        })


@dataclass
class BackstageIdentity:
    """Stable internal identity, plus the session token once issued."""

    id: str
    id_token: Optional[str] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return _drop_none({"id": self.id, "id_token": self.id_token})


@dataclass
class OAuthResponse:
    """Canonical result of a completed handshake."""

    provider_info: ProviderInfo
    profile: ProfileInfo
    backstage_identity: BackstageIdentity

    def to_dict(self) -> dict:
        return {
            "provider_info": self.provider_info.to_dict(),
            "profile": self.profile.to_dict(),
            "backstage_identity": self.backstage_identity.to_dict(),
        }


@dataclass(frozen=True)
class RedirectInfo:
    """Where to send the browser to start the handshake."""

    url: str
    status: int = 302
    nonce: Optional[str] = field(default=None, repr=False)

"""
Normalization of provider profiles into the canonical OAuth response.

These functions are pure apart from logging: they take whatever a provider
adapter parsed out of the provider's user payload and produce the same
shape for every provider.
"""

import logging
from typing import List, Optional

import jwt

from .models import (
    BackstageIdentity,
    CanonicalProfile,
    HandshakeParams,
    OAuthResponse,
    ProfileInfo,
    ProviderInfo,
    RawProviderPayload,
)

logger = logging.getLogger(__name__)


def _email_values(raw_emails) -> List[str]:
    values = []
    for entry in raw_emails or []:
        value = entry.get("value") if isinstance(entry, dict) else entry
        if value is not None:
            values.append(value)
    return values


def normalize_profile(raw: RawProviderPayload) -> CanonicalProfile:
    """
    Convert a raw provider payload into a canonical profile.

    Optional fields that the provider did not report are left as ``None``
    instead of being defaulted, so "no email" stays distinguishable from
    "empty email".

    Args:
        raw: Payload parsed from the provider's user endpoint

    Returns:
        Canonical profile with a string ``id``
    """
    emails = _email_values(raw.get("emails"))
    avatar_url = raw.get("avatar_url")

    return CanonicalProfile(
        id=str(raw.get("id")),
        provider=raw.get("provider"),
        username=raw.get("username"),
        display_name=raw.get("display_name"),
        emails=emails if emails else None,
        photos=[avatar_url] if avatar_url else None,
    )


def _decode_id_token(id_token: str) -> dict:
    """Read id token claims without verifying the signature."""
    try:
        return jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning(f"Ignoring undecodable id token: {e}")
        return {}


def make_profile_info(
    profile: CanonicalProfile, id_token: Optional[str] = None
) -> ProfileInfo:
    """
    Derive the frontend profile from a canonical profile.

    The first email is treated as primary. Claims from ``id_token`` only fill
    in fields the profile itself does not provide; the username is the last
    resort for the display name. The provider id is never shown.
    """
    email = profile.emails[0] if profile.emails else None
    picture = profile.photos[0] if profile.photos else None
    display_name = profile.display_name

    if id_token and not (email and picture and display_name):
        claims = _decode_id_token(id_token)
        email = email or claims.get("email")
        picture = picture or claims.get("picture")
        display_name = display_name or claims.get("name")

    return ProfileInfo(
        email=email,
        picture=picture,
        display_name=display_name or profile.username,
    )


def derive_identity_id(profile: CanonicalProfile, profile_info: ProfileInfo) -> str:
    """
    Map a login to the stable internal identity id.

    The local part of the primary email wins; the provider's native id is
    used when there is no email or the email has no usable local part.
    """
    identity_id = profile.id

    email = profile_info.email
    if email:
        local_part, at, _ = email.partition("@")
        if at and local_part:
            identity_id = local_part
        else:
            logger.warning(
                f"Primary email of user {profile.id} has no local part, "
                "falling back to the provider id"
            )

    return identity_id


def transform_oauth_response(
    access_token: str,
    raw: RawProviderPayload,
    params: Optional[HandshakeParams] = None,
) -> OAuthResponse:
    """
    Build the canonical OAuth response for a completed handshake.

    Args:
        access_token: Access token issued by the provider
        raw: Raw provider payload
        params: Scope, expiry and id token reported by the token endpoint

    Returns:
        OAuthResponse with provider info, derived profile and identity
    """
    params = params or HandshakeParams()
    profile = normalize_profile(raw)
    profile_info = make_profile_info(profile, params.id_token)

    provider_info = ProviderInfo(access_token=access_token)
    if params.scope is not None:
        provider_info.scope = params.scope
    if params.expires_in_seconds is not None:
        provider_info.expires_in_seconds = params.expires_in_seconds
    if params.id_token is not None:
        provider_info.id_token = params.id_token
    if params.refresh_token is not None:
        provider_info.refresh_token = params.refresh_token

    return OAuthResponse(
        provider_info=provider_info,
        profile=profile_info,
        backstage_identity=BackstageIdentity(id=derive_identity_id(profile, profile_info)),
    )

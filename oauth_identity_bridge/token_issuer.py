"""
Session token issuance.

After a successful handshake the internal identity id is turned into a
signed JWT that the frontend presents on later requests.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

import jwt

from .config import JwtConfig

logger = logging.getLogger(__name__)

REGISTERED_CLAIMS = ("iss", "aud", "sub", "iat", "nbf", "exp")


class TokenIssuer(Protocol):
    """Anything that can turn an identity id into a session credential."""

    def issue_token(self, identity_id: str, claims: Optional[dict] = None) -> str:
        ...


class JwtTokenIssuer:
    """
    Sign session tokens for identities established by a provider login.

    Key files are read on first use, so an issuer can be constructed (and
    the app started) before the keys are mounted.
    """

    def __init__(self, config: JwtConfig):
        self.config = config
        self._keys: Dict[str, str] = {}

    def _read_key(self, path: str) -> str:
        if path not in self._keys:
            key_file = Path(path)
            if not key_file.is_file():
                raise FileNotFoundError(f"Key file not found: {path}")
            self._keys[path] = key_file.read_text()
        return self._keys[path]

    @property
    def private_key(self) -> str:
        return self._read_key(self.config.private_key_file)

    @property
    def public_key(self) -> str:
        return self._read_key(self.config.public_key_file)

    def _registered_claims(self, identity_id: str) -> dict:
        issued_at = datetime.now(timezone.utc)
        return {
            "iss": self.config.issuer,
            "aud": self.config.audience,
            "sub": identity_id,
            "iat": issued_at,
            "nbf": issued_at,
            "exp": issued_at + timedelta(hours=self.config.token_expiry_hours),
        }

    def issue_token(self, identity_id: str, claims: Optional[dict] = None) -> str:
        """
        Issue a session token for an authenticated identity.

        Args:
            identity_id: Stable internal identity id, used as ``sub``
            claims: Extra claims, e.g. the provider name. Registered claims
                in here are ignored.

        Raises:
            FileNotFoundError: The private key file is missing
        """
        extra = {
            name: value
            for name, value in (claims or {}).items()
            if name not in REGISTERED_CLAIMS
        }
        token = jwt.encode(
            {**extra, **self._registered_claims(identity_id)},
            self.private_key,
            algorithm=self.config.algorithm,
        )

        logger.info(f"Issued session token for identity: {identity_id}")
        return token

    def verify_token(self, token: str) -> Optional[dict]:
        """Return the claims of a valid session token, or None."""
        try:
            return jwt.decode(
                token,
                self.public_key,
                algorithms=[self.config.algorithm],
                audience=self.config.audience,
                issuer=self.config.issuer,
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Session token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected session token: {e}")
        return None

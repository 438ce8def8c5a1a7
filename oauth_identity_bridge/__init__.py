"""
oauth-identity-bridge

Sign users in through a third-party OAuth 2.0 / OpenID Connect identity
provider and turn the provider's answer into one stable identity.

Supported providers include:
- GitLab (gitlab.com or self-managed)
- GitHub (github.com or Enterprise Server)
- Google

This package provides:
- OAuth 2.0 Authorization Code flow with anti-forgery state
- Normalization of provider profiles into a canonical response
- Session token issuance after a successful login
- Refresh-token grants for providers that support them
"""

__version__ = "0.1.0"

from .errors import (
    AuthBridgeError,
    AuthenticationError,
    ConfigurationError,
    IssuanceError,
    StateMismatchError,
    UpstreamExchangeError,
)
from .orchestrator import HandshakeOrchestrator
from .plugin import AuthBridgePlugin, create_app
from .blueprint import auth_bp

__all__ = [
    "AuthBridgePlugin",
    "HandshakeOrchestrator",
    "auth_bp",
    "create_app",
    "AuthBridgeError",
    "AuthenticationError",
    "ConfigurationError",
    "IssuanceError",
    "StateMismatchError",
    "UpstreamExchangeError",
    "__version__",
]

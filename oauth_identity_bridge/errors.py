"""
Exception hierarchy for the OAuth handshake.

Authentication failures (``StateMismatchError``, ``UpstreamExchangeError``)
are reported to the browser as unauthenticated responses, while
``IssuanceError`` signals that the user was identified but no session
token could be issued.
"""


class AuthBridgeError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(AuthBridgeError):
    """Required provider credentials or URLs are missing."""


class AuthenticationError(AuthBridgeError):
    """The handshake did not establish who the user is."""


class StateMismatchError(AuthenticationError):
    """The callback state does not match the nonce issued at redirect time."""


class UpstreamExchangeError(AuthenticationError):
    """The provider rejected the code or the token/profile fetch failed."""


class IssuanceError(AuthBridgeError):
    """The token issuer failed after a successful handshake."""

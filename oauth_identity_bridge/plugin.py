"""
Flask extension for the OAuth identity bridge.

The plugin builds one login orchestrator per configured provider and
exposes them to the blueprint through ``app.extensions``.
"""

import logging
from typing import Dict, Optional

from flask import Flask

from .blueprint import EXTENSION_NAME, auth_bp
from .cli import auth_bridge_cli
from .config import BridgeConfig
from .orchestrator import HandshakeOrchestrator
from .providers import create_provider
from .token_issuer import JwtTokenIssuer, TokenIssuer

logger = logging.getLogger(__name__)


class AuthBridgePlugin:
    """
    OAuth login for Flask applications.

    Configuration errors (missing client id, secret or callback URL) are
    raised from ``init_app`` so that a misconfigured app fails at startup.
    """

    def __init__(
        self,
        app: Flask = None,
        config: Optional[BridgeConfig] = None,
        token_issuer: Optional[TokenIssuer] = None,
    ):
        """
        Initialize the plugin.

        Args:
            app: Flask application instance (optional, can call init_app later)
            config: Bridge configuration, loaded from the environment if omitted
            token_issuer: Session token issuer, a JwtTokenIssuer if omitted
        """
        self.app = app
        self.config = config
        self.token_issuer = token_issuer
        self.providers: Dict[str, HandshakeOrchestrator] = {}

        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask):
        """
        Initialize the plugin with a Flask application.

        Args:
            app: Flask application instance
        """
        self.app = app

        if self.config is None:
            self.config = BridgeConfig.from_env()
        if self.token_issuer is None:
            self.token_issuer = JwtTokenIssuer(self.config.jwt)

        self.providers = {
            provider_id: create_provider(provider_id, self.config, self.token_issuer)
            for provider_id in self.config.providers
        }

        app.extensions[EXTENSION_NAME] = self
        app.cli.add_command(auth_bridge_cli)

        if self.providers:
            logger.info(f"OAuth providers: {', '.join(sorted(self.providers))}")
        else:
            logger.warning("No OAuth providers configured - AUTH_PROVIDERS not set")

    def get_blueprint(self):
        """Return the Flask blueprint for this extension."""
        return auth_bp

    def get_config_secrets_to_obfuscate(self):
        """Return config keys that should not be exposed."""
        return [
            f"AUTH_{provider_id.upper()}_CLIENT_SECRET"
            for provider_id in (self.config.providers if self.config else {})
        ]

    @staticmethod
    def get_name() -> str:
        return "oauth-identity-bridge"

    @staticmethod
    def get_version() -> str:
        from . import __version__
        return __version__


def create_app(config: Optional[BridgeConfig] = None) -> Flask:
    """
    Build a standalone app serving only the auth routes.

    Usage: ``flask --app oauth_identity_bridge.plugin:create_app run``
    """
    app = Flask(__name__)
    app.config.from_prefixed_env()
    plugin = AuthBridgePlugin(app, config=config)
    app.register_blueprint(plugin.get_blueprint())
    return app

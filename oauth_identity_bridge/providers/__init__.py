"""
Provider registry.

Maps provider names to factories that build a ready-to-use
``HandshakeOrchestrator`` from configuration.
"""

from typing import Callable, Dict

from ..config import BridgeConfig, ProviderConfig
from ..errors import ConfigurationError
from ..orchestrator import HandshakeOrchestrator
from ..token_issuer import TokenIssuer
from .github import GithubAuthProvider, create_github_provider
from .gitlab import GitlabAuthProvider, create_gitlab_provider
from .google import GoogleAuthProvider, create_google_provider

ProviderFactory = Callable[[BridgeConfig, ProviderConfig, TokenIssuer], HandshakeOrchestrator]

PROVIDER_FACTORIES: Dict[str, ProviderFactory] = {
    "gitlab": create_gitlab_provider,
    "github": create_github_provider,
    "google": create_google_provider,
}


def create_provider(
    provider_id: str, config: BridgeConfig, token_issuer: TokenIssuer
) -> HandshakeOrchestrator:
    """
    Build the orchestrator for a configured provider.

    Raises:
        ConfigurationError: Unknown provider or incomplete client registration
    """
    factory = PROVIDER_FACTORIES.get(provider_id)
    if factory is None:
        raise ConfigurationError(
            f"Unknown auth provider '{provider_id}', "
            f"available: {', '.join(sorted(PROVIDER_FACTORIES))}"
        )

    provider_config = config.providers.get(provider_id)
    if provider_config is None:
        provider_config = ProviderConfig.from_env(provider_id)

    return factory(config, provider_config, token_issuer)


__all__ = [
    "PROVIDER_FACTORIES",
    "create_provider",
    "GithubAuthProvider",
    "GitlabAuthProvider",
    "GoogleAuthProvider",
]

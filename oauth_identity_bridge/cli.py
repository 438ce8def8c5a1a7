"""
Flask CLI commands for the OAuth identity bridge.

These commands help with setup and debugging of provider registrations.
"""

from pathlib import Path

import click
from flask import current_app
from flask.cli import with_appcontext

from .config import BridgeConfig


def _current_config() -> BridgeConfig:
    plugin = current_app.extensions.get("oauth_identity_bridge")
    if plugin is not None and plugin.config is not None:
        return plugin.config
    return BridgeConfig.from_env()


def _masked(value: str) -> str:
    return value[:8] + "..." if value else "Not configured"


@click.group("auth-bridge")
def auth_bridge_cli():
    """OAuth identity bridge management commands."""
    pass


@auth_bridge_cli.command("show-config")
@with_appcontext
def show_config():
    """Display current bridge configuration."""
    config = _current_config()

    click.echo("=== Bridge Configuration ===")
    click.echo(f"Base URL: {config.base_url}")
    click.echo(f"App Origin: {config.app_origin}")
    click.echo(f"HTTP Timeout: {config.http_timeout}s")

    for provider_id, provider in sorted(config.providers.items()):
        click.echo(f"\n=== Provider: {provider_id} ===")
        click.echo(f"Client ID: {_masked(provider.client_id)}")
        click.echo(f"Client Secret: {'Configured' if provider.client_secret else 'Not configured'}")
        click.echo(f"Audience: {provider.audience or 'Provider default'}")
        click.echo(f"Scope: {provider.scope or 'Provider default'}")
        click.echo(f"Callback URL: {config.callback_url(provider_id)}")
        if provider.disable_refresh is None:
            click.echo("Refresh: Provider default")
        else:
            click.echo(f"Refresh: {'Disabled' if provider.disable_refresh else 'Enabled'}")

    click.echo("\n=== JWT Configuration ===")
    click.echo(f"Private Key File: {config.jwt.private_key_file}")
    click.echo(f"Public Key File: {config.jwt.public_key_file}")
    click.echo(f"Algorithm: {config.jwt.algorithm}")
    click.echo(f"Issuer: {config.jwt.issuer}")
    click.echo(f"Token Expiry: {config.jwt.token_expiry_hours} hours")


@auth_bridge_cli.command("list-providers")
def list_providers():
    """List supported providers and the variables they read."""
    from .providers import PROVIDER_FACTORIES

    click.echo("=== Supported Providers ===\n")
    for provider_id in sorted(PROVIDER_FACTORIES):
        prefix = f"AUTH_{provider_id.upper()}_"
        click.echo(f"{provider_id}:")
        click.echo(f"  {prefix}CLIENT_ID, {prefix}CLIENT_SECRET (required)")
        click.echo(f"  {prefix}AUDIENCE, {prefix}SCOPE, {prefix}DISABLE_REFRESH (optional)")
        click.echo()


@auth_bridge_cli.command("validate-config")
@with_appcontext
@click.pass_context
def validate_config(ctx):
    """Validate the current configuration."""
    from .errors import ConfigurationError
    from .providers import create_provider

    config = _current_config()
    errors = []
    warnings = []

    if not Path(config.jwt.private_key_file).exists():
        errors.append(f"JWT private key not found: {config.jwt.private_key_file}")
    if not Path(config.jwt.public_key_file).exists():
        errors.append(f"JWT public key not found: {config.jwt.public_key_file}")

    if not config.providers:
        errors.append("AUTH_PROVIDERS not configured")

    for provider_id in config.providers:
        try:
            create_provider(provider_id, config, token_issuer=None)
        except ConfigurationError as e:
            errors.append(str(e))

    if not config.base_url.startswith("https://"):
        warnings.append("AUTH_BASE_URL is not https, cookies will not be marked Secure")

    if warnings:
        click.echo("=== Warnings ===")
        for warning in warnings:
            click.echo(f"  ! {warning}")

    if errors:
        click.echo("\n=== Errors ===")
        for error in errors:
            click.echo(f"  x {error}")
        click.echo(f"\nConfiguration validation failed with {len(errors)} error(s)")
        ctx.exit(1)

    click.echo("\n[OK] Configuration is valid!")


@auth_bridge_cli.command("test-jwt")
@click.option("--identity", default="test-user", help="Identity id to issue a token for")
@with_appcontext
def test_jwt(identity):
    """Issue and verify a test session token."""
    from .token_issuer import JwtTokenIssuer

    try:
        issuer = JwtTokenIssuer(_current_config().jwt)
        token = issuer.issue_token(identity, claims={"provider": "cli"})

        click.echo("=== Issued Session Token ===")
        click.echo(token)
        click.echo("\n=== Token Verification ===")

        claims = issuer.verify_token(token)
        if claims:
            click.echo("Token is valid!")
            for key, value in claims.items():
                click.echo(f"  {key}: {value}")
        else:
            click.echo("Token verification failed!", err=True)

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Make sure JWT key files are configured correctly.")

"""Shared fixtures for the OAuth identity bridge tests."""

import base64
import json
import re
from types import SimpleNamespace
from urllib.parse import parse_qsl, urlparse

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import Flask

from oauth_identity_bridge.config import BridgeConfig, JwtConfig, ProviderConfig
from oauth_identity_bridge.plugin import AuthBridgePlugin

BASE_URL = "http://localhost:5000/auth"
APP_ORIGIN = "http://localhost:3000"


class FakeTokenIssuer:
    """Records issued identities instead of signing anything."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def issue_token(self, identity_id, claims=None):
        self.calls.append((identity_id, claims))
        if self.fail:
            raise RuntimeError("signing key unavailable")
        return f"session-token-for-{identity_id}"


def make_request(args=None, cookies=None):
    """Minimal stand-in for a Flask request."""
    return SimpleNamespace(args=dict(args or {}), cookies=dict(cookies or {}))


def query_params(url: str) -> dict:
    return dict(parse_qsl(urlparse(url).query))


def decode_post_message(html: str) -> dict:
    """Extract the payload a frame handler page posts to its opener."""
    match = re.search(r"atob\('([^']+)'\)", html)
    assert match, html
    return json.loads(base64.b64decode(match.group(1)))


@pytest.fixture
def token_issuer():
    return FakeTokenIssuer()


@pytest.fixture
def bridge_config():
    return BridgeConfig(
        base_url=BASE_URL,
        app_origin=APP_ORIGIN,
        providers={
            "gitlab": ProviderConfig(client_id="gitlab-client", client_secret="gitlab-secret"),
            "github": ProviderConfig(client_id="github-client", client_secret="github-secret"),
            "google": ProviderConfig(client_id="google-client", client_secret="google-secret"),
        },
    )


@pytest.fixture
def app(bridge_config, token_issuer):
    app = Flask(__name__)
    app.config["TESTING"] = True
    plugin = AuthBridgePlugin(app, config=bridge_config, token_issuer=token_issuer)
    app.register_blueprint(plugin.get_blueprint())
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def jwt_config(tmp_path):
    """JWT config backed by a freshly generated RSA key pair."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )

    private_file = tmp_path / "jwt_key"
    public_file = tmp_path / "jwt_key.pub"
    private_file.write_bytes(private_pem)
    public_file.write_bytes(public_pem)

    return JwtConfig(
        private_key_file=str(private_file),
        public_key_file=str(public_file),
        issuer="test-issuer",
        audience="test-audience",
    )

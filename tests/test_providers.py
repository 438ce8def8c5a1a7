"""Tests for the provider adapters and the registry."""

from unittest.mock import patch
from urllib.parse import parse_qsl

import httpx
import pytest

from conftest import make_request, query_params
from oauth_identity_bridge.config import BridgeConfig, ProviderConfig
from oauth_identity_bridge.errors import (
    ConfigurationError,
    StateMismatchError,
    UpstreamExchangeError,
)
from oauth_identity_bridge.providers import (
    GithubAuthProvider,
    GitlabAuthProvider,
    GoogleAuthProvider,
    create_provider,
)

CALLBACK_URL = "http://localhost:5000/auth/gitlab/handler/frame"
GITLAB_TOKEN_URL = "https://gitlab.com/oauth/token"
GITLAB_USER_URL = "https://gitlab.com/api/v4/user"

GITLAB_USER = {
    "id": 1234,
    "username": "alice",
    "name": "Alice Liddell",
    "email": "alice@example.com",
    "avatar_url": "https://gitlab.com/uploads/alice.png",
}


@pytest.fixture
def gitlab():
    return GitlabAuthProvider(
        client_id="gitlab-client",
        client_secret="gitlab-secret",
        callback_url=CALLBACK_URL,
    )


def _callback(nonce="nonce-1", **args):
    args.setdefault("state", nonce)
    return make_request(args=args, cookies={"gitlab-nonce": nonce})


class TestGitlabParseProfile:
    """Tests for GitlabAuthProvider.parse_profile."""

    def test_full_profile(self):
        raw = GitlabAuthProvider.parse_profile(GITLAB_USER)
        assert raw == {
            "id": 1234,
            "username": "alice",
            "provider": "gitlab",
            "display_name": "Alice Liddell",
            "emails": [{"value": "alice@example.com"}],
            "avatar_url": "https://gitlab.com/uploads/alice.png",
        }

    def test_profile_without_email(self):
        raw = GitlabAuthProvider.parse_profile({"id": 5, "username": "bob"})
        assert raw["emails"] == []
        assert raw["avatar_url"] is None

    def test_missing_id_is_rejected(self):
        with pytest.raises(UpstreamExchangeError):
            GitlabAuthProvider.parse_profile({"username": "ghost"})


class TestGitlabStart:
    """Tests for the redirect leg."""

    def test_authorization_url(self, gitlab):
        redirect_info = gitlab.start(make_request(), {})

        assert redirect_info.status == 302
        assert redirect_info.url.startswith("https://gitlab.com/oauth/authorize?")
        params = query_params(redirect_info.url)
        assert params["client_id"] == "gitlab-client"
        assert params["redirect_uri"] == CALLBACK_URL
        assert params["response_type"] == "code"
        assert params["scope"] == "read_user"
        assert params["state"] == redirect_info.nonce

    def test_each_start_issues_a_fresh_nonce(self, gitlab):
        first = gitlab.start(make_request(), {})
        second = gitlab.start(make_request(), {})
        assert first.nonce != second.nonce

    def test_options_are_passed_through(self, gitlab):
        redirect_info = gitlab.start(make_request(), {"scope": "read_user api", "login_hint": "alice"})
        params = query_params(redirect_info.url)
        assert params["scope"] == "read_user api"
        assert params["login_hint"] == "alice"

    def test_reserved_options_cannot_override(self, gitlab):
        redirect_info = gitlab.start(
            make_request(), {"state": "attacker", "redirect_uri": "https://evil.example"}
        )
        params = query_params(redirect_info.url)
        assert params["state"] == redirect_info.nonce
        assert params["redirect_uri"] == CALLBACK_URL

    def test_options_named_like_client_arguments_are_dropped(self, gitlab):
        redirect_info = gitlab.start(
            make_request(), {"url": "https://evil.example", "code_verifier": "v"}
        )
        assert redirect_info.url.startswith("https://gitlab.com/oauth/authorize?")
        params = query_params(redirect_info.url)
        assert "url" not in params
        assert "code_challenge" not in params

    def test_self_managed_base_url(self):
        provider = GitlabAuthProvider(
            client_id="id",
            client_secret="secret",
            callback_url=CALLBACK_URL,
            base_url="https://gitlab.internal.example/",
        )
        redirect_info = provider.start(make_request(), {})
        assert redirect_info.url.startswith("https://gitlab.internal.example/oauth/authorize?")


class TestGitlabComplete:
    """Tests for the callback leg."""

    def test_happy_path(self, gitlab, httpx_mock):
        httpx_mock.add_response(
            url=GITLAB_TOKEN_URL,
            method="POST",
            json={
                "access_token": "gl-access",
                "token_type": "Bearer",
                "scope": "read_user",
                "expires_in": 7200,
                "refresh_token": "gl-refresh",
            },
        )
        httpx_mock.add_response(url=GITLAB_USER_URL, json=GITLAB_USER)

        response = gitlab.complete(_callback(code="auth-code"))

        assert response.backstage_identity.id == "alice"
        assert response.profile.email == "alice@example.com"
        assert response.profile.display_name == "Alice Liddell"
        assert response.profile.picture == "https://gitlab.com/uploads/alice.png"
        assert response.provider_info.access_token == "gl-access"
        assert response.provider_info.scope == "read_user"
        assert response.provider_info.expires_in_seconds == 7200
        assert response.provider_info.id_token is None
        assert response.provider_info.refresh_token == "gl-refresh"

    def test_token_request_uses_authorization_code_grant(self, gitlab, httpx_mock):
        httpx_mock.add_response(url=GITLAB_TOKEN_URL, method="POST", json={"access_token": "gl-access"})
        httpx_mock.add_response(url=GITLAB_USER_URL, json=GITLAB_USER)

        gitlab.complete(_callback(code="auth-code"))

        token_request = httpx_mock.get_request(url=GITLAB_TOKEN_URL)
        body = dict(parse_qsl(token_request.content.decode()))
        assert body["grant_type"] == "authorization_code"
        assert body["code"] == "auth-code"
        assert body["redirect_uri"] == CALLBACK_URL
        assert body["client_id"] == "gitlab-client"
        assert body["client_secret"] == "gitlab-secret"

        user_request = httpx_mock.get_request(url=GITLAB_USER_URL)
        assert user_request.headers["Authorization"] == "Bearer gl-access"

    def test_profile_without_email_uses_native_id(self, gitlab, httpx_mock):
        httpx_mock.add_response(url=GITLAB_TOKEN_URL, method="POST", json={"access_token": "gl-access"})
        httpx_mock.add_response(url=GITLAB_USER_URL, json={"id": 1234, "username": "alice"})

        response = gitlab.complete(_callback(code="auth-code"))

        assert response.backstage_identity.id == "1234"
        assert response.provider_info.expires_in_seconds is None

    def test_altered_state_never_reaches_transformer(self, gitlab):
        request = make_request(
            args={"state": "altered", "code": "auth-code"},
            cookies={"gitlab-nonce": "nonce-1"},
        )
        with patch("oauth_identity_bridge.providers.gitlab.transform_oauth_response") as transform:
            with pytest.raises(StateMismatchError):
                gitlab.complete(request)
        transform.assert_not_called()

    def test_non_ascii_state_is_a_mismatch(self, gitlab):
        request = make_request(
            args={"state": "évil", "code": "auth-code"},
            cookies={"gitlab-nonce": "nonce-1"},
        )
        with pytest.raises(StateMismatchError):
            gitlab.complete(request)

    def test_missing_nonce_cookie(self, gitlab):
        request = make_request(args={"state": "nonce-1", "code": "auth-code"})
        with pytest.raises(StateMismatchError):
            gitlab.complete(request)

    def test_missing_state(self, gitlab):
        request = make_request(args={"code": "auth-code"}, cookies={"gitlab-nonce": "nonce-1"})
        with pytest.raises(StateMismatchError):
            gitlab.complete(request)

    def test_provider_error_parameter(self, gitlab):
        request = _callback(error="access_denied", error_description="The user denied access")
        with pytest.raises(UpstreamExchangeError, match="access_denied"):
            gitlab.complete(request)

    def test_missing_code(self, gitlab):
        with pytest.raises(UpstreamExchangeError, match="No authorization code"):
            gitlab.complete(_callback())

    def test_rejected_code(self, gitlab, httpx_mock):
        httpx_mock.add_response(
            url=GITLAB_TOKEN_URL,
            method="POST",
            status_code=400,
            json={"error": "invalid_grant", "error_description": "The code has expired"},
        )
        with pytest.raises(UpstreamExchangeError):
            gitlab.complete(_callback(code="expired-code"))

    def test_token_endpoint_server_error(self, gitlab, httpx_mock):
        httpx_mock.add_response(url=GITLAB_TOKEN_URL, method="POST", status_code=502, text="bad gateway")
        with pytest.raises(UpstreamExchangeError):
            gitlab.complete(_callback(code="auth-code"))

    def test_token_endpoint_unreachable(self, gitlab, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("connection refused"), url=GITLAB_TOKEN_URL)
        with pytest.raises(UpstreamExchangeError):
            gitlab.complete(_callback(code="auth-code"))

    def test_token_response_without_access_token(self, gitlab, httpx_mock):
        httpx_mock.add_response(url=GITLAB_TOKEN_URL, method="POST", json={"token_type": "Bearer"})
        with pytest.raises(UpstreamExchangeError, match="no access token"):
            gitlab.complete(_callback(code="auth-code"))

    def test_profile_fetch_failure(self, gitlab, httpx_mock):
        httpx_mock.add_response(url=GITLAB_TOKEN_URL, method="POST", json={"access_token": "gl-access"})
        httpx_mock.add_response(url=GITLAB_USER_URL, status_code=401, json={"message": "401 Unauthorized"})
        with pytest.raises(UpstreamExchangeError, match="Request to gitlab"):
            gitlab.complete(_callback(code="auth-code"))

    def test_malformed_profile_payload(self, gitlab, httpx_mock):
        httpx_mock.add_response(url=GITLAB_TOKEN_URL, method="POST", json={"access_token": "gl-access"})
        httpx_mock.add_response(url=GITLAB_USER_URL, json=["not", "an", "object"])
        with pytest.raises(UpstreamExchangeError, match="malformed"):
            gitlab.complete(_callback(code="auth-code"))


class TestGitlabRefresh:
    """Tests for the refresh grant."""

    def test_refresh(self, gitlab, httpx_mock):
        httpx_mock.add_response(
            url=GITLAB_TOKEN_URL,
            method="POST",
            json={"access_token": "gl-access-2", "refresh_token": "gl-refresh-2", "expires_in": 7200},
        )
        httpx_mock.add_response(url=GITLAB_USER_URL, json=GITLAB_USER)

        response = gitlab.refresh("gl-refresh")

        assert response.provider_info.access_token == "gl-access-2"
        assert response.provider_info.refresh_token == "gl-refresh-2"
        body = dict(parse_qsl(httpx_mock.get_request(url=GITLAB_TOKEN_URL).content.decode()))
        assert body["grant_type"] == "refresh_token"
        assert body["refresh_token"] == "gl-refresh"


class TestGithubProvider:
    """Tests for GithubAuthProvider."""

    def test_parse_profile(self):
        raw = GithubAuthProvider.parse_profile({
            "id": 583231,
            "login": "octocat",
            "name": "The Octocat",
            "email": None,
            "avatar_url": "https://avatars.githubusercontent.com/u/583231",
        })
        assert raw["id"] == 583231
        assert raw["username"] == "octocat"
        assert raw["display_name"] == "The Octocat"
        assert raw["emails"] == []
        assert raw["provider"] == "github"

    def test_complete(self, httpx_mock):
        provider = GithubAuthProvider(
            client_id="github-client",
            client_secret="github-secret",
            callback_url="http://localhost:5000/auth/github/handler/frame",
        )
        httpx_mock.add_response(
            url="https://github.com/login/oauth/access_token",
            method="POST",
            json={"access_token": "gho_token", "token_type": "bearer", "scope": "read:user,user:email"},
        )
        httpx_mock.add_response(
            url="https://api.github.com/user",
            json={"id": 583231, "login": "octocat", "email": "octo@github.com"},
        )

        request = make_request(
            args={"state": "n", "code": "c"}, cookies={"github-nonce": "n"}
        )
        response = provider.complete(request)

        assert response.backstage_identity.id == "octo"
        assert response.profile.display_name == "octocat"
        assert response.provider_info.scope == "read:user,user:email"

    def _complete_with_private_email(self, httpx_mock, **emails_response):
        provider = GithubAuthProvider(
            client_id="github-client",
            client_secret="github-secret",
            callback_url="http://localhost:5000/auth/github/handler/frame",
        )
        httpx_mock.add_response(
            url="https://github.com/login/oauth/access_token",
            method="POST",
            json={"access_token": "gho_token", "token_type": "bearer"},
        )
        httpx_mock.add_response(
            url="https://api.github.com/user",
            json={"id": 583231, "login": "octocat", "email": None},
        )
        httpx_mock.add_response(url="https://api.github.com/user/emails", **emails_response)

        request = make_request(args={"state": "n", "code": "c"}, cookies={"github-nonce": "n"})
        return provider.complete(request)

    def test_private_email_is_looked_up(self, httpx_mock):
        response = self._complete_with_private_email(httpx_mock, json=[
            {"email": "old@example.com", "primary": False, "verified": True},
            {"email": "octo@users.noreply.github.com", "primary": True, "verified": True},
        ])

        assert response.backstage_identity.id == "octo"
        assert response.profile.email == "octo@users.noreply.github.com"
        emails_request = httpx_mock.get_request(url="https://api.github.com/user/emails")
        assert emails_request.headers["Authorization"] == "Bearer gho_token"

    def test_email_lookup_without_grant_falls_back_to_native_id(self, httpx_mock):
        response = self._complete_with_private_email(
            httpx_mock, status_code=404, json={"message": "Not Found"}
        )

        assert response.backstage_identity.id == "583231"
        assert response.profile.email is None

    @pytest.mark.parametrize("emails,expected", [
        ([{"email": "a@x.io", "primary": True, "verified": True}], "a@x.io"),
        ([{"email": "a@x.io", "primary": True, "verified": False},
          {"email": "b@x.io", "primary": False, "verified": True}], "b@x.io"),
        ([{"email": "a@x.io", "primary": True, "verified": False}], None),
        ([], None),
    ])
    def test_primary_email(self, emails, expected):
        assert GithubAuthProvider.primary_email(emails) == expected

    def test_enterprise_endpoints(self):
        provider = GithubAuthProvider(
            client_id="id",
            client_secret="secret",
            callback_url="http://localhost/cb",
            base_url="https://github.example.com",
        )
        redirect_info = provider.start(make_request(), {})
        assert redirect_info.url.startswith("https://github.example.com/login/oauth/authorize?")
        assert query_params(redirect_info.url)["scope"] == "read:user user:email"


class TestGoogleProvider:
    """Tests for GoogleAuthProvider."""

    def test_parse_profile(self):
        raw = GoogleAuthProvider.parse_profile({
            "sub": "10769150350006150715113082367",
            "name": "Jane Doe",
            "email": "jane@example.org",
            "picture": "https://lh3.googleusercontent.com/a/jane",
        })
        assert raw["id"] == "10769150350006150715113082367"
        assert raw["avatar_url"] == "https://lh3.googleusercontent.com/a/jane"
        assert raw["emails"] == [{"value": "jane@example.org"}]

    def test_missing_subject_is_rejected(self):
        with pytest.raises(UpstreamExchangeError):
            GoogleAuthProvider.parse_profile({"email": "jane@example.org"})

    def test_offline_access_is_requested(self):
        provider = GoogleAuthProvider(
            client_id="google-client",
            client_secret="google-secret",
            callback_url="http://localhost/cb",
        )
        params = query_params(provider.start(make_request(), {}).url)
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"
        assert params["scope"] == "openid email profile"


class TestConfiguration:
    """Tests for adapter construction and the registry."""

    @pytest.mark.parametrize("missing", ["client_id", "client_secret", "callback_url"])
    def test_missing_configuration(self, missing):
        kwargs = {"client_id": "id", "client_secret": "secret", "callback_url": CALLBACK_URL}
        kwargs[missing] = ""
        with pytest.raises(ConfigurationError, match=missing):
            GitlabAuthProvider(**kwargs)

    def test_create_provider_defaults(self, bridge_config, token_issuer):
        gitlab = create_provider("gitlab", bridge_config, token_issuer)
        github = create_provider("github", bridge_config, token_issuer)
        google = create_provider("google", bridge_config, token_issuer)

        assert gitlab.provider_id == "gitlab"
        assert gitlab.disable_refresh is True
        assert github.disable_refresh is True
        assert google.disable_refresh is False

    def test_create_provider_audience(self, token_issuer):
        config = BridgeConfig(
            base_url="https://backstage.example.com/api/auth",
            providers={
                "gitlab": ProviderConfig(
                    client_id="id",
                    client_secret="secret",
                    audience="https://gitlab.example.com",
                    disable_refresh=False,
                ),
            },
        )
        orchestrator = create_provider("gitlab", config, token_issuer)
        redirect_info = orchestrator.begin_login(make_request())

        assert orchestrator.disable_refresh is False
        assert redirect_info.url.startswith("https://gitlab.example.com/oauth/authorize?")
        assert query_params(redirect_info.url)["redirect_uri"] == (
            "https://backstage.example.com/api/auth/gitlab/handler/frame"
        )

    def test_unknown_provider(self, bridge_config, token_issuer):
        with pytest.raises(ConfigurationError, match="Unknown auth provider"):
            create_provider("myspace", bridge_config, token_issuer)

    def test_missing_credentials(self, token_issuer):
        config = BridgeConfig(providers={"gitlab": ProviderConfig(client_id="id")})
        with pytest.raises(ConfigurationError, match="client_secret"):
            create_provider("gitlab", config, token_issuer)

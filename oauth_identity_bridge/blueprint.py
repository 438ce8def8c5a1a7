"""
Flask blueprint for the OAuth login popup.

This blueprint provides the following endpoints:
- GET /auth/providers - List configured providers
- GET /auth/<provider>/start - Redirect to the provider's login page
- GET /auth/<provider>/handler/frame - Provider callback, posts the result to the opener window
- POST /auth/<provider>/refresh - Refresh the session from the refresh cookie
- POST /auth/<provider>/logout - Clear the refresh cookie
"""

import base64
import json
import logging
from typing import Optional

from flask import current_app, jsonify, make_response, redirect, request, url_for
from flask_smorest import Blueprint

from .errors import AuthenticationError, IssuanceError
from .orchestrator import HandshakeOrchestrator
from .strategy import nonce_cookie_name

logger = logging.getLogger(__name__)

EXTENSION_NAME = "oauth_identity_bridge"

NONCE_COOKIE_MAX_AGE = 600
REFRESH_COOKIE_MAX_AGE = 1000 * 24 * 3600

auth_bp = Blueprint(
    EXTENSION_NAME,
    __name__,
    url_prefix="/auth",
    description="OAuth identity provider login endpoints"
)


def get_plugin():
    """Return the plugin registered on the current app."""
    return current_app.extensions[EXTENSION_NAME]


def get_orchestrator(provider_id: str) -> Optional[HandshakeOrchestrator]:
    return get_plugin().providers.get(provider_id)


def refresh_cookie_name(provider_id: str) -> str:
    return f"{provider_id}-refresh-token"


def _provider_path(provider_id: str) -> str:
    return url_for(f"{EXTENSION_NAME}.start", provider_id=provider_id).rsplit("/", 1)[0]


def _unknown_provider(provider_id: str):
    return jsonify({
        "error": "Unknown auth provider",
        "message": f"No auth provider named '{provider_id}' is configured",
    }), 404


def post_message_response(data: dict, status: int = 200):
    """
    Render a page that hands ``data`` to the window that opened the popup.

    The payload is base64 encoded so that nothing in it can break out of the
    script block.
    """
    app_origin = get_plugin().config.app_origin
    encoded = base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")

    html = (
        "<html><body><script>\n"
        f"(window.opener || window.parent).postMessage("
        f"JSON.parse(atob('{encoded}')), {json.dumps(app_origin)});\n"
        "window.close();\n"
        "</script></body></html>"
    )
    response = make_response(html, status)
    response.headers["Content-Type"] = "text/html; charset=utf-8"
    response.headers["X-Frame-Options"] = "sameorigin"
    return response


def _error_payload(error: Exception) -> dict:
    return {
        "type": "authorization_response",
        "error": {"name": type(error).__name__, "message": str(error)},
    }


def _requested_with_xhr() -> bool:
    return request.headers.get("X-Requested-With") == "XMLHttpRequest"


def _set_refresh_cookie(response, provider_id: str, refresh_token: str):
    response.set_cookie(
        refresh_cookie_name(provider_id),
        refresh_token,
        httponly=True,
        secure=get_plugin().config.secure_cookies,
        samesite="Lax",
        max_age=REFRESH_COOKIE_MAX_AGE,
        path=_provider_path(provider_id),
    )


@auth_bp.route("/providers")
def list_providers():
    """
    Return the configured providers.

    The frontend uses this to render login buttons.
    """
    return jsonify({
        "providers": [
            {
                "id": provider_id,
                "start_url": url_for(f"{EXTENSION_NAME}.start", provider_id=provider_id, _external=True),
                "refresh_enabled": not orchestrator.disable_refresh,
            }
            for provider_id, orchestrator in sorted(get_plugin().providers.items())
        ]
    })


@auth_bp.route("/<provider_id>/start")
def start(provider_id):
    """
    Redirect the browser to the provider's authorization page.

    Query parameters are passed to the provider as authorization options,
    e.g. ``scope``.
    """
    orchestrator = get_orchestrator(provider_id)
    if orchestrator is None:
        return _unknown_provider(provider_id)

    redirect_info = orchestrator.begin_login(request, request.args.to_dict())

    response = make_response(redirect(redirect_info.url, code=redirect_info.status))
    response.set_cookie(
        nonce_cookie_name(provider_id),
        redirect_info.nonce,
        httponly=True,
        secure=get_plugin().config.secure_cookies,
        samesite="Lax",
        max_age=NONCE_COOKIE_MAX_AGE,
        path=f"{_provider_path(provider_id)}/handler",
    )
    return response


@auth_bp.route("/<provider_id>/handler/frame")
def frame_handler(provider_id):
    """
    OAuth callback endpoint.

    Completes the handshake and posts either the OAuth response or the error
    to the opener window.
    """
    orchestrator = get_orchestrator(provider_id)
    if orchestrator is None:
        return _unknown_provider(provider_id)

    try:
        oauth_response = orchestrator.complete_login(request)
    except AuthenticationError as e:
        logger.warning(f"{provider_id} authentication failed: {e}")
        response = post_message_response(_error_payload(e), status=401)
    except IssuanceError as e:
        logger.error(f"{provider_id} login succeeded but token issuance failed: {e}")
        response = post_message_response(_error_payload(e), status=500)
    else:
        response = post_message_response({
            "type": "authorization_response",
            "response": oauth_response.to_dict(),
        })
        refresh_token = oauth_response.provider_info.refresh_token
        if refresh_token and not orchestrator.disable_refresh:
            _set_refresh_cookie(response, provider_id, refresh_token)

    response.delete_cookie(
        nonce_cookie_name(provider_id),
        path=f"{_provider_path(provider_id)}/handler",
    )
    return response


@auth_bp.route("/<provider_id>/refresh", methods=["POST"])
def refresh(provider_id):
    """
    Refresh the provider session using the refresh token cookie.

    Query parameters:
        scope: Scope to request (optional)
    """
    orchestrator = get_orchestrator(provider_id)
    if orchestrator is None:
        return _unknown_provider(provider_id)

    if not _requested_with_xhr():
        return jsonify({"error": "Invalid X-Requested-With header"}), 401

    refresh_token = request.cookies.get(refresh_cookie_name(provider_id), "")
    try:
        oauth_response = orchestrator.refresh_login(refresh_token, request.args.get("scope"))
    except AuthenticationError as e:
        logger.warning(f"{provider_id} refresh failed: {e}")
        return jsonify({"error": type(e).__name__, "message": str(e)}), 401
    except IssuanceError as e:
        logger.error(f"{provider_id} refresh succeeded but token issuance failed: {e}")
        return jsonify({"error": type(e).__name__, "message": str(e)}), 500

    response = make_response(jsonify(oauth_response.to_dict()))
    new_refresh_token = oauth_response.provider_info.refresh_token
    if new_refresh_token and new_refresh_token != refresh_token:
        _set_refresh_cookie(response, provider_id, new_refresh_token)
    return response


@auth_bp.route("/<provider_id>/logout", methods=["POST"])
def logout(provider_id):
    """
    Logout by clearing the refresh token cookie.
    """
    if get_orchestrator(provider_id) is None:
        return _unknown_provider(provider_id)

    if not _requested_with_xhr():
        return jsonify({"error": "Invalid X-Requested-With header"}), 401

    response = make_response(jsonify({}))
    response.delete_cookie(refresh_cookie_name(provider_id), path=_provider_path(provider_id))

    logger.info(f"User logged out of {provider_id}")
    return response

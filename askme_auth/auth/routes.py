"""
Authentication routes for local sign-in, session queries and the OIDC
authorization code flow with Microsoft Entra ID.

Every verification or provider failure reaches the user as the same generic
message; the detail is only written to the server logs.
"""

import logging
from html import escape
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError

from ..config import Settings
from ..dependencies import (
    build_session_facade,
    get_app_settings,
    get_oidc_controller,
    get_session_facade,
)
from ..errors import ConfigurationError, DecodeError, MockAuthDisabled
from ..models import (
    AuthorizationUrlResponse,
    LoginRequest,
    MockLoginRequest,
    OIDCAuthState,
    OIDCCallbackRequest,
    SessionResponse,
)
from . import codec
from .facade import SessionFacade
from .oidc import OIDCFlowController, parse_provider_error

logger = logging.getLogger(__name__)


AUTH_FAILED_MESSAGE = "Authentication failed, please try again."

OIDC_STATE_COOKIE = "oidc_auth_state"
OIDC_STATE_MAX_AGE = 10 * 60


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


# =============================================================================
# Local Sign-in / Session Endpoints
# =============================================================================

@auth_router.post("/login")
async def login(
    payload: LoginRequest,
    response: Response,
    facade: SessionFacade = Depends(get_session_facade),
):
    """
    Sign in with a locally configured email/password pair.

    Invalid input is rejected with 422 before any credential check.
    """
    user = facade.sign_in(payload.email, payload.password)
    if user is None:
        response.status_code = status.HTTP_401_UNAUTHORIZED
        return {"status": "failed"}

    return {"status": "success", "user": user}


@auth_router.post("/mock/login")
async def mock_login(
    payload: MockLoginRequest,
    facade: SessionFacade = Depends(get_session_facade),
):
    """Development-only sign-in issuing an unsigned mock token."""
    try:
        user = facade.sign_in_mock(payload.email)
    except MockAuthDisabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    return {"success": True, "user": user}


@auth_router.post("/logout")
async def logout(
    facade: SessionFacade = Depends(get_session_facade),
    oidc: OIDCFlowController = Depends(get_oidc_controller),
    settings: Settings = Depends(get_app_settings),
):
    """Delete the session cookie; returns the provider logout URL when SSO is configured."""
    facade.sign_out()
    logout_url = oidc.build_logout_url() if settings.oidc_configured else None
    return {"ok": True, "logout_url": logout_url}


@auth_router.get("/session", response_model=SessionResponse)
async def current_session(
    response: Response,
    facade: SessionFacade = Depends(get_session_facade),
):
    user = facade.current_user()
    if user is None:
        response.status_code = status.HTTP_401_UNAUTHORIZED
        return SessionResponse(ok=False)

    return SessionResponse(ok=True, user=user)


# =============================================================================
# OIDC Endpoints
# =============================================================================

@auth_router.get("/oidc/authorize-url", response_model=AuthorizationUrlResponse)
async def oidc_authorize_url(oidc: OIDCFlowController = Depends(get_oidc_controller)):
    """
    Return the authorization URL and the auth state the client must keep
    (e.g. in sessionStorage) until it posts the callback.
    """
    url, auth_state = _build_authorization_url(oidc)
    return AuthorizationUrlResponse(url=url, state=auth_state)


@auth_router.get("/oidc/login", response_class=RedirectResponse)
async def oidc_login(
    oidc: OIDCFlowController = Depends(get_oidc_controller),
    settings: Settings = Depends(get_app_settings),
):
    """
    Redirect the browser to the provider, keeping the auth state in a
    short-lived cookie for the callback.
    """
    url, auth_state = _build_authorization_url(oidc)

    response = RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=OIDC_STATE_COOKIE,
        value=codec.encode(auth_state.model_dump_json()),
        max_age=OIDC_STATE_MAX_AGE,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )
    return response


@auth_router.get("/oidc/callback", response_class=HTMLResponse)
async def oidc_callback(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code from the provider"),
    state: Optional[str] = Query(None, description="State parameter for CSRF protection"),
    oidc: OIDCFlowController = Depends(get_oidc_controller),
    settings: Settings = Depends(get_app_settings),
):
    """
    Handle the provider redirect.

    Provider errors are checked first, then the code is exchanged using the
    auth state cookie (or the fallback state when the cookie is gone).
    """
    provider_error = parse_provider_error(request.query_params)
    if provider_error:
        logger.warning(
            f"Identity provider returned an error: {provider_error.error}",
            extra={"error_description": provider_error.error_description},
        )
        return _render_error_page(settings)

    if not code or not state:
        logger.warning("Callback is missing code or state")
        return _render_error_page(settings)

    user_info = await oidc.complete_login(code, state, _read_state_cookie(request))
    if user_info is None:
        return _render_error_page(settings)

    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    facade = build_session_facade(request, response, settings)
    if facade.sign_in_with_identity(user_info) is None:
        return _render_error_page(settings)

    _clear_state_cookie(response, settings)
    return response


@auth_router.post("/oidc/callback")
async def oidc_callback_json(
    payload: OIDCCallbackRequest,
    response: Response,
    facade: SessionFacade = Depends(get_session_facade),
    oidc: OIDCFlowController = Depends(get_oidc_controller),
):
    """
    Callback variant for clients that kept the auth state themselves and
    forward the redirect artifacts as JSON.
    """
    provider_error = parse_provider_error({
        "error": payload.error or "",
        "error_description": payload.error_description or "",
        "error_uri": payload.error_uri or "",
    })
    if provider_error:
        logger.warning(f"Identity provider returned an error: {provider_error.error}")
        response.status_code = status.HTTP_400_BAD_REQUEST
        return {"error": AUTH_FAILED_MESSAGE}

    if not payload.code or not payload.state:
        response.status_code = status.HTTP_400_BAD_REQUEST
        return {"error": AUTH_FAILED_MESSAGE}

    user_info = await oidc.complete_login(payload.code, payload.state, payload.stored_state)
    user = facade.sign_in_with_identity(user_info) if user_info else None
    if user is None:
        response.status_code = status.HTTP_400_BAD_REQUEST
        return {"error": AUTH_FAILED_MESSAGE}

    return {"user": user}


# =============================================================================
# Helpers
# =============================================================================

def _build_authorization_url(oidc: OIDCFlowController):
    try:
        return oidc.build_authorization_url()
    except ConfigurationError as e:
        logger.error(f"Cannot start OIDC login: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Single sign-on is not available",
        )


def _read_state_cookie(request: Request) -> Optional[OIDCAuthState]:
    raw = request.cookies.get(OIDC_STATE_COOKIE)
    if not raw:
        return None

    try:
        return OIDCAuthState.model_validate_json(codec.decode(raw))
    except (DecodeError, ValidationError) as e:
        logger.warning(f"Ignoring unreadable auth state cookie: {type(e).__name__}")
        return None


def _clear_state_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=OIDC_STATE_COOKIE,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def _render_error_page(settings: Settings, message: str = AUTH_FAILED_MESSAGE) -> HTMLResponse:
    """
    Render the error page shown for any failed OIDC login.

    The auth state is single use, so its cookie is cleared here as well.
    """
    html_content = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>Sign-in Failed</title>
        <style>
            body {{
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
                display: flex;
                align-items: center;
                justify-content: center;
                min-height: 100vh;
                margin: 0;
                background: #f3f4f6;
            }}
            .container {{
                background: white;
                border-radius: 12px;
                padding: 40px;
                max-width: 480px;
                text-align: center;
                box-shadow: 0 10px 40px rgba(0,0,0,0.1);
            }}
            .message {{
                color: #6b7280;
                margin-bottom: 32px;
            }}
            .button {{
                background: #667eea;
                color: white;
                padding: 14px 32px;
                border-radius: 8px;
                text-decoration: none;
                font-weight: 600;
            }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>Sign-in Failed</h1>
            <p class="message">{escape(message)}</p>
            <a href="/auth/oidc/login" class="button">Try Again</a>
        </div>
    </body>
    </html>
    """

    response = HTMLResponse(content=html_content, status_code=status.HTTP_400_BAD_REQUEST)
    _clear_state_cookie(response, settings)
    return response

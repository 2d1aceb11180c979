"""
FastAPI dependency providers.

Everything request-scoped is built from the settings stored on the
application, so tests can swap the credential store or the provider HTTP
client through `app.state`.
"""

from typing import Optional

import httpx
from fastapi import Depends, Request, Response

from .auth.credentials import StaticCredentialStore
from .auth.facade import SessionFacade
from .auth.oidc import OIDCFlowController
from .auth.session import CookieSessionStore
from .config import Settings


def get_app_settings(request: Request) -> Settings:
    """
    Settings the application was created with.
    """
    return request.app.state.settings


def get_session_facade(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_app_settings),
) -> SessionFacade:
    """
    Session facade bound to the cookies of the current request/response.
    """
    return build_session_facade(request, response, settings)


def build_session_facade(request: Request, response: Response, settings: Settings) -> SessionFacade:
    credentials = getattr(request.app.state, "credential_store", None)
    if credentials is None:
        credentials = StaticCredentialStore.from_settings(settings)
    return SessionFacade(CookieSessionStore(request, response, settings), credentials, settings)


def get_oidc_controller(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> OIDCFlowController:
    http_client: Optional[httpx.AsyncClient] = getattr(request.app.state, "oidc_http_client", None)
    return OIDCFlowController(settings, http_client=http_client)

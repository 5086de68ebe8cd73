import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from .. import oauth
from ..auth import Authenticated, InactiveUserError, issue_token, sign_in_email_password
from ..config import settings
from ..dependencies import SESSION_TOKEN_KEY, get_session, get_user_repository
from ..models import User
from ..repositories import EmailAlreadyExistsError, StorageError, UserRepository
from ..templating import templates

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

DEFAULT_CALLBACK_URL = "/dashboard"

ERROR_MESSAGES = {
    "CredentialsSignin": "Sign in failed. Check the details you provided are correct.",
    "AccessDenied": "Your account is not active.",
    "OAuthCallback": "The sign-in provider could not complete the request.",
    "OAuthAccountNotLinked": "This email is already registered with a different sign-in method.",
}


def _safe_callback_url(value: Optional[str], default: str = DEFAULT_CALLBACK_URL) -> str:
    if not value or not value.startswith("/") or value.startswith("//"):
        return default
    return value


def _error_redirect(error: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"/api/auth/error?{urlencode({'error': error})}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


def _start_session(
    request: Request, users: UserRepository, user: User, callback_url: str
) -> RedirectResponse:
    try:
        token = issue_token(
            users, email=user.email, name=user.name, image=user.image, subject=user.id
        )
    except InactiveUserError:
        logger.warning("Denied sign-in for inactive user %s", user.email)
        request.session.clear()
        return _error_redirect("AccessDenied")

    request.session.clear()
    request.session[SESSION_TOKEN_KEY] = token
    logger.info("Signed in %s", user.email)
    return RedirectResponse(url=callback_url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/signin", response_class=HTMLResponse)
def signin_page(
    request: Request,
    callbackUrl: Optional[str] = None,
    error: Optional[str] = None,
):
    return templates.TemplateResponse(
        request,
        "auth/signin.html",
        {
            "providers": list(oauth.get_providers(settings).values()),
            "callback_url": _safe_callback_url(callbackUrl),
            "error": ERROR_MESSAGES.get(error, error) if error else None,
            "page_title": "Sign in",
        },
    )


@router.post("/callback/credentials")
async def credentials_callback(
    request: Request, users: UserRepository = Depends(get_user_repository)
):
    form = await request.form()
    email = (form.get("email") or "").strip()
    password = form.get("password") or ""
    callback_url = _safe_callback_url(form.get("callbackUrl"))

    user = await run_in_threadpool(sign_in_email_password, users, email, password)
    if user is None:
        query = urlencode({"error": "CredentialsSignin", "callbackUrl": callback_url})
        return RedirectResponse(
            url=f"/api/auth/signin?{query}", status_code=status.HTTP_303_SEE_OTHER
        )
    return _start_session(request, users, user, callback_url)


@router.api_route("/signin/{provider_id}", methods=["GET", "POST"])
def oauth_signin(request: Request, provider_id: str, callbackUrl: Optional[str] = None):
    provider = oauth.get_providers(settings).get(provider_id)
    if provider is None:
        raise HTTPException(status_code=404, detail=f"Unknown provider {provider_id}")

    state = secrets.token_urlsafe(32)
    request.session["oauth_state"] = state
    request.session["callback_url"] = _safe_callback_url(callbackUrl)
    redirect_uri = str(request.url_for("oauth_callback", provider_id=provider_id))
    return RedirectResponse(
        url=provider.authorize_url(redirect_uri, state),
        status_code=status.HTTP_303_SEE_OTHER,
    )


@router.get("/callback/{provider_id}", name="oauth_callback")
async def oauth_callback(
    request: Request,
    provider_id: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    users: UserRepository = Depends(get_user_repository),
):
    provider = oauth.get_providers(settings).get(provider_id)
    if provider is None:
        raise HTTPException(status_code=404, detail=f"Unknown provider {provider_id}")

    expected_state = request.session.pop("oauth_state", None)
    callback_url = _safe_callback_url(request.session.pop("callback_url", None))
    if error or not code or not state or state != expected_state:
        logger.warning("Rejected %s callback (error=%s)", provider_id, error)
        return _error_redirect("OAuthCallback")

    redirect_uri = str(request.url_for("oauth_callback", provider_id=provider_id))
    try:
        async with httpx.AsyncClient(timeout=settings.oauth_timeout_seconds) as client:
            access_token = await oauth.exchange_code(client, provider, code, redirect_uri)
            profile = await oauth.fetch_profile(client, provider, access_token)
    except oauth.OAuthError:
        logger.warning("%s sign-in failed", provider.name, exc_info=True)
        return _error_redirect("OAuthCallback")

    if not profile.email:
        logger.warning("%s profile %s has no email", provider.name, profile.account_id)
        return _error_redirect("OAuthCallback")

    user = users.find_by_account(provider.id, profile.account_id)
    if user is None:
        if users.find_by_email(profile.email) is not None:
            return _error_redirect("OAuthAccountNotLinked")
        try:
            user = users.create_oauth_user(
                email=profile.email,
                name=profile.name,
                image=profile.image,
                provider=provider.id,
                provider_account_id=profile.account_id,
                access_token=access_token,
            )
        except EmailAlreadyExistsError:
            # A concurrent callback may have created the same linked user first.
            user = users.find_by_account(provider.id, profile.account_id)
            if user is None:
                return _error_redirect("OAuthAccountNotLinked")
        except StorageError:
            logger.exception("Could not store %s user %s", provider.name, profile.email)
            return _error_redirect("OAuthCallback")
    return _start_session(request, users, user, callback_url)


@router.get("/signout", response_class=HTMLResponse)
def signout_page(request: Request, session=Depends(get_session)):
    return templates.TemplateResponse(
        request,
        "auth/signout.html",
        {"current_user": session, "page_title": "Sign out"},
    )


@router.post("/signout")
async def signout(request: Request):
    form = await request.form()
    callback_url = _safe_callback_url(form.get("callbackUrl"), default="/api/auth/signin")
    request.session.clear()
    return RedirectResponse(
        url=callback_url,
        status_code=status.HTTP_303_SEE_OTHER,
    )


@router.get("/session")
def read_session(session=Depends(get_session)):
    if not isinstance(session, Authenticated):
        return JSONResponse({})
    expires = datetime.now(timezone.utc) + timedelta(seconds=settings.session_max_age_seconds)
    return JSONResponse({"user": session.to_dict(), "expires": expires.isoformat()})


@router.get("/providers")
def list_providers(request: Request):
    providers = {
        "credentials": {
            "id": "credentials",
            "name": "Credentials",
            "type": "credentials",
            "signinUrl": "/api/auth/signin",
            "callbackUrl": "/api/auth/callback/credentials",
        }
    }
    for provider in oauth.get_providers(settings).values():
        providers[provider.id] = {
            "id": provider.id,
            "name": provider.name,
            "type": "oauth",
            "signinUrl": f"/api/auth/signin/{provider.id}",
            "callbackUrl": str(request.url_for("oauth_callback", provider_id=provider.id)),
        }
    return providers


@router.get("/error", response_class=HTMLResponse)
def auth_error(request: Request, error: Optional[str] = None):
    status_code = (
        status.HTTP_403_FORBIDDEN if error == "AccessDenied" else status.HTTP_400_BAD_REQUEST
    )
    return templates.TemplateResponse(
        request,
        "auth/error.html",
        {
            "error": error,
            "message": ERROR_MESSAGES.get(error, "Unable to sign in."),
            "page_title": "Sign-in error",
        },
        status_code=status_code,
    )

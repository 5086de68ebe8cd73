"""OAuth 2 authorization-code flow for GitHub and Google."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from .config import Settings

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    """Raised when a provider rejects the code exchange or profile request."""


@dataclass(frozen=True)
class OAuthProvider:
    id: str
    name: str
    authorization_url: str
    token_url: str
    userinfo_url: str
    scope: str
    client_id: Optional[str]
    client_secret: Optional[str]

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorize_url(self, redirect_uri: str, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": self.scope,
            "state": state,
            "response_type": "code",
        }
        return str(httpx.URL(self.authorization_url, params=params))


@dataclass(frozen=True)
class OAuthProfile:
    provider: str
    account_id: str
    email: Optional[str]
    name: Optional[str]
    image: Optional[str]


def get_providers(settings: Settings) -> Dict[str, OAuthProvider]:
    providers = [
        OAuthProvider(
            id="github",
            name="GitHub",
            authorization_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            userinfo_url="https://api.github.com/user",
            scope="read:user user:email",
            client_id=settings.github_id,
            client_secret=settings.github_secret,
        ),
        OAuthProvider(
            id="google",
            name="Google",
            authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
            scope="openid email profile",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        ),
    ]
    return {provider.id: provider for provider in providers if provider.enabled}


async def exchange_code(
    client: httpx.AsyncClient, provider: OAuthProvider, code: str, redirect_uri: str
) -> str:
    try:
        response = await client.post(
            provider.token_url,
            data={
                "client_id": provider.client_id,
                "client_secret": provider.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise OAuthError(f"{provider.name} token exchange failed") from exc

    access_token = payload.get("access_token")
    if not access_token:
        raise OAuthError(
            f"{provider.name} returned no access token: {payload.get('error', 'unknown error')}"
        )
    return access_token


async def fetch_profile(
    client: httpx.AsyncClient, provider: OAuthProvider, access_token: str
) -> OAuthProfile:
    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
    try:
        response = await client.get(provider.userinfo_url, headers=headers)
        response.raise_for_status()
        data = response.json()
        if provider.id == "github":
            email = data.get("email") or await _github_primary_email(client, headers)
            return OAuthProfile(
                provider=provider.id,
                account_id=str(data["id"]),
                email=email,
                name=data.get("name") or data.get("login"),
                image=data.get("avatar_url"),
            )
    except (httpx.HTTPError, ValueError, KeyError) as exc:
        raise OAuthError(f"{provider.name} profile request failed") from exc

    if "sub" not in data:
        raise OAuthError(f"{provider.name} profile has no subject")
    return OAuthProfile(
        provider=provider.id,
        account_id=str(data["sub"]),
        email=data.get("email"),
        name=data.get("name"),
        image=data.get("picture"),
    )


async def _github_primary_email(client: httpx.AsyncClient, headers: dict) -> Optional[str]:
    response = await client.get("https://api.github.com/user/emails", headers=headers)
    response.raise_for_status()
    for entry in response.json():
        if entry.get("primary") and entry.get("verified"):
            return entry.get("email")
    return None

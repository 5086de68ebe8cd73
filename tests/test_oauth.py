import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from taskboard import models, oauth
from taskboard.config import settings
from taskboard.repositories import SqlAlchemyUserRepository, StorageError


@pytest.fixture()
def github(monkeypatch):
    monkeypatch.setattr(settings, "github_id", "gh-client")
    monkeypatch.setattr(settings, "github_secret", "gh-secret")
    return oauth.get_providers(settings)["github"]


@pytest.fixture()
def fake_github(monkeypatch):
    """Replace the provider round-trips with a canned profile."""

    profile = oauth.OAuthProfile(
        provider="github",
        account_id="4242",
        email="octo@example.com",
        name="Octo Cat",
        image="https://avatars.example/octo.png",
    )

    async def _exchange_code(client, provider, code, redirect_uri):
        assert code == "good-code"
        return "gh-access-token"

    async def _fetch_profile(client, provider, access_token):
        assert access_token == "gh-access-token"
        return profile

    monkeypatch.setattr(oauth, "exchange_code", _exchange_code)
    monkeypatch.setattr(oauth, "fetch_profile", _fetch_profile)
    return profile


def _start_github_signin(client):
    resp = client.get("/api/auth/signin/github?callbackUrl=/dashboard/todos", follow_redirects=False)
    assert resp.status_code == 303
    location = urlparse(resp.headers["location"])
    return location, parse_qs(location.query)


def test_providers_without_configuration(client):
    assert list(client.get("/api/auth/providers").json()) == ["credentials"]


def test_providers_list_configured_oauth(client, github):
    data = client.get("/api/auth/providers").json()

    assert set(data) == {"credentials", "github"}
    assert data["github"]["callbackUrl"] == "http://testserver/api/auth/callback/github"


def test_authorize_url_contains_client_and_state(github):
    url = urlparse(github.authorize_url("http://testserver/cb", "xyz"))
    params = parse_qs(url.query)

    assert url.netloc == "github.com"
    assert params["client_id"] == ["gh-client"]
    assert params["state"] == ["xyz"]
    assert params["response_type"] == ["code"]


def test_unknown_provider_returns_404(client):
    resp = client.get("/api/auth/signin/github", headers={"Accept": "application/json"})

    assert resp.status_code == 404


def test_github_signin_creates_and_links_user(client, db_session, github, fake_github):
    location, params = _start_github_signin(client)
    assert location.netloc == "github.com"

    resp = client.get(
        "/api/auth/callback/github",
        params={"code": "good-code", "state": params["state"][0]},
        follow_redirects=False,
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/dashboard/todos"
    user = db_session.query(models.User).filter_by(email="octo@example.com").one()
    assert user.name == "Octo Cat"
    assert [(a.provider, a.provider_account_id) for a in user.accounts] == [("github", "4242")]
    assert client.get("/api/auth/session").json()["user"]["roles"] == ["user"]


def test_callback_with_wrong_state_is_rejected(client, github, fake_github):
    _start_github_signin(client)

    resp = client.get(
        "/api/auth/callback/github",
        params={"code": "good-code", "state": "forged"},
        follow_redirects=False,
    )

    assert resp.headers["location"] == "/api/auth/error?error=OAuthCallback"


def test_existing_email_is_not_linked(client, user_factory, github, fake_github):
    user_factory("octo@example.com")
    _, params = _start_github_signin(client)

    resp = client.get(
        "/api/auth/callback/github",
        params={"code": "good-code", "state": params["state"][0]},
        follow_redirects=False,
    )

    assert resp.headers["location"] == "/api/auth/error?error=OAuthAccountNotLinked"


def test_fetch_profile_falls_back_to_primary_email(github):
    def handler(request):
        if request.url.path == "/user":
            return httpx.Response(200, json={"id": 7, "login": "octo", "email": None})
        if request.url.path == "/user/emails":
            return httpx.Response(
                200,
                json=[
                    {"email": "old@example.com", "primary": False, "verified": True},
                    {"email": "octo@example.com", "primary": True, "verified": True},
                ],
            )
        return httpx.Response(404)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await oauth.fetch_profile(client, github, "token")

    profile = asyncio.run(run())

    assert profile.account_id == "7"
    assert profile.email == "octo@example.com"
    assert profile.name == "octo"


def test_exchange_code_without_token_raises(github):
    def handler(request):
        return httpx.Response(200, json={"error": "bad_verification_code"})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await oauth.exchange_code(client, github, "bad", "http://testserver/cb")

    with pytest.raises(oauth.OAuthError, match="bad_verification_code"):
        asyncio.run(run())


def test_failed_user_write_can_be_retried(client, db_session, github, fake_github, monkeypatch):
    original = SqlAlchemyUserRepository.create_oauth_user
    calls = []

    def _fail_once(self, **kwargs):
        calls.append(kwargs["email"])
        if len(calls) == 1:
            raise StorageError("Database write failed")
        return original(self, **kwargs)

    monkeypatch.setattr(SqlAlchemyUserRepository, "create_oauth_user", _fail_once)

    _, params = _start_github_signin(client)
    resp = client.get(
        "/api/auth/callback/github",
        params={"code": "good-code", "state": params["state"][0]},
        follow_redirects=False,
    )
    assert resp.headers["location"] == "/api/auth/error?error=OAuthCallback"
    assert db_session.query(models.User).filter_by(email="octo@example.com").first() is None

    _, params = _start_github_signin(client)
    resp = client.get(
        "/api/auth/callback/github",
        params={"code": "good-code", "state": params["state"][0]},
        follow_redirects=False,
    )
    assert resp.headers["location"] == "/dashboard/todos"


def test_oauth_user_and_account_are_written_together(db_session, user_factory):
    owner = user_factory("first@example.com")
    users = SqlAlchemyUserRepository(db_session)
    users.create_oauth_user(
        email="linked@example.com",
        name="Linked",
        image=None,
        provider="github",
        provider_account_id="99",
    )
    assert users.find_by_account("github", "99").email == "linked@example.com"

    # Same provider account again: the account insert fails, so no user row stays behind.
    with pytest.raises(StorageError):
        users.create_oauth_user(
            email="second@example.com",
            name="Second",
            image=None,
            provider="github",
            provider_account_id="99",
        )

    assert users.find_by_email("second@example.com") is None
    assert users.find_by_email(owner.email) is not None

"""Tests for the OAuth token lifecycle manager."""

import asyncio
from dataclasses import replace
from urllib.parse import parse_qs, parse_qsl, urlparse

import httpx
import pytest

from domains.google_tasks import config as gt_config
from domains.google_tasks.errors import AuthError
from domains.google_tasks.services.auth import (
    TokenManager,
    code_challenge,
    generate_code_verifier,
    parse_oauth_error,
)
from domains.google_tasks.services.callback_server import CallbackServer
from domains.google_tasks.types import AuthSession, AuthState

NOW = 1_700_000_000.0


class TokenEndpoint:
    """MockTransport handler for the token endpoint that records form posts."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.forms = []

    def __call__(self, request):
        assert str(request.url) == gt_config.TOKEN_ENDPOINT
        self.forms.append(dict(parse_qsl(request.content.decode())))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeBrowser:
    """open_browser replacement that optionally follows the redirect."""

    def __init__(self, query=None):
        self.query = query
        self.urls = []
        self._visits = []

    def __call__(self, url):
        self.urls.append(url)
        if self.query is not None:
            self._visits.append(asyncio.get_running_loop().create_task(self._visit(url)))
        return True

    async def _visit(self, url):
        redirect_uri = parse_qs(urlparse(url).query)["redirect_uri"][0]
        async with httpx.AsyncClient() as client:
            try:
                await client.get(redirect_uri.replace("localhost", "127.0.0.1") + self.query)
            except httpx.HTTPError:
                pass

    async def finish(self):
        await asyncio.gather(*self._visits, return_exceptions=True)

    @property
    def params(self):
        return {k: v[0] for k, v in parse_qs(urlparse(self.urls[0]).query).items()}


def token_response(**overrides):
    payload = {"access_token": "ya29.new-access", "expires_in": 3599, "token_type": "Bearer"}
    payload.update(overrides)
    return httpx.Response(200, json=payload)


def make_manager(settings, store, endpoint=None, browser=None):
    return TokenManager(
        settings,
        store,
        transport=httpx.MockTransport(endpoint or TokenEndpoint(token_response())),
        clock=lambda: NOW,
        open_browser=browser or FakeBrowser(),
    )


def store_tokens(store, expires_in, refresh_token="1//stored-refresh"):
    store.set(gt_config.TOKEN_DATA_KEY, {
        "access_token": "ya29.old-access",
        "refresh_token": refresh_token,
        "expires_at": NOW + expires_in,
    })


class TestPkce:

    def test_verifier_is_unpadded_base64url(self):
        verifier = generate_code_verifier()
        assert len(verifier) == 43
        assert "=" not in verifier and "+" not in verifier and "/" not in verifier

    def test_verifiers_are_random(self):
        assert generate_code_verifier() != generate_code_verifier()

    def test_s256_challenge_known_vector(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_authorization_url(self, settings, token_store):
        manager = make_manager(settings, token_store)
        session = AuthSession(code_verifier="v" * 43, redirect_uri="http://localhost:8080/oauth2callback")

        url = manager.build_authorization_url(session)
        params = {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}

        assert url.startswith(gt_config.AUTH_ENDPOINT + "?")
        assert params["client_id"] == "test-client-id"
        assert params["redirect_uri"] == "http://localhost:8080/oauth2callback"
        assert params["response_type"] == "code"
        assert params["scope"] == "https://www.googleapis.com/auth/tasks"
        assert params["code_challenge"] == code_challenge("v" * 43)
        assert params["code_challenge_method"] == "S256"
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"


class TestInitialize:

    @pytest.mark.asyncio
    async def test_no_stored_tokens(self, settings, token_store):
        manager = make_manager(settings, token_store)
        await manager.initialize()

        assert manager.state == AuthState.UNAUTHENTICATED
        assert not manager.is_authenticated()

    @pytest.mark.asyncio
    async def test_fresh_tokens_loaded_without_refresh(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(token_response())
        manager = make_manager(settings, token_store, endpoint)

        await manager.initialize()

        assert manager.state == AuthState.AUTHENTICATED
        assert manager.is_authenticated()
        assert endpoint.forms == []

    @pytest.mark.asyncio
    async def test_expiring_tokens_refreshed(self, settings, token_store):
        store_tokens(token_store, expires_in=60)
        endpoint = TokenEndpoint(token_response())
        manager = make_manager(settings, token_store, endpoint)

        await manager.initialize()

        assert endpoint.forms[0]["grant_type"] == "refresh_token"
        assert endpoint.forms[0]["refresh_token"] == "1//stored-refresh"
        assert manager.tokens.access_token == "ya29.new-access"
        # Google leaves the refresh token out of refresh responses
        assert manager.tokens.refresh_token == "1//stored-refresh"
        assert manager.tokens.expires_at == NOW + 3599
        assert token_store.get(gt_config.TOKEN_DATA_KEY)["access_token"] == "ya29.new-access"

    @pytest.mark.asyncio
    async def test_refresh_failure_drops_in_memory_tokens_only(self, settings, token_store):
        store_tokens(token_store, expires_in=60)
        endpoint = TokenEndpoint(httpx.Response(503, text="Service Unavailable"))
        manager = make_manager(settings, token_store, endpoint)

        await manager.initialize()

        assert manager.state == AuthState.UNAUTHENTICATED
        assert len(endpoint.forms) == 1
        assert token_store.get(gt_config.TOKEN_DATA_KEY) is not None

    @pytest.mark.asyncio
    async def test_unreadable_refresh_response_drops_in_memory_tokens(self, settings, token_store):
        store_tokens(token_store, expires_in=60)
        endpoint = TokenEndpoint(httpx.Response(200, text="<html>Sign in</html>"))
        manager = make_manager(settings, token_store, endpoint)

        await manager.initialize()

        assert manager.state == AuthState.UNAUTHENTICATED
        assert token_store.get(gt_config.TOKEN_DATA_KEY)["access_token"] == "ya29.old-access"

    @pytest.mark.asyncio
    async def test_invalid_grant_clears_stored_tokens(self, settings, token_store):
        store_tokens(token_store, expires_in=60)
        endpoint = TokenEndpoint(httpx.Response(400, json={
            "error": "invalid_grant",
            "error_description": "Token has been expired or revoked.",
        }))
        manager = make_manager(settings, token_store, endpoint)

        await manager.initialize()

        assert manager.state == AuthState.UNAUTHENTICATED
        assert token_store.get(gt_config.TOKEN_DATA_KEY) is None


class TestRefresh:

    @pytest.mark.asyncio
    async def test_invalid_grant_raises_and_clears(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(httpx.Response(400, json={"error": "invalid_grant"}))
        manager = make_manager(settings, token_store, endpoint)
        await manager.initialize()

        with pytest.raises(AuthError) as exc_info:
            await manager.refresh_access_token()

        assert exc_info.value.error_code == "invalid_grant"
        assert manager.tokens is None
        assert token_store.get(gt_config.TOKEN_DATA_KEY) is None

    @pytest.mark.asyncio
    async def test_other_failure_keeps_tokens(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(httpx.Response(500, text="oops"))
        manager = make_manager(settings, token_store, endpoint)
        await manager.initialize()

        with pytest.raises(AuthError):
            await manager.refresh_access_token()

        assert manager.tokens.access_token == "ya29.old-access"
        assert manager.state == AuthState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_non_json_success_wrapped(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(httpx.Response(200, text="<html>captive portal</html>"))
        manager = make_manager(settings, token_store, endpoint)
        await manager.initialize()

        with pytest.raises(AuthError) as exc_info:
            await manager.refresh_access_token()

        assert "Unreadable token response" in str(exc_info.value)
        assert manager.tokens.access_token == "ya29.old-access"

    @pytest.mark.asyncio
    async def test_non_object_json_wrapped(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(httpx.Response(200, json=["ya29.new-access"]))
        manager = make_manager(settings, token_store, endpoint)
        await manager.initialize()

        with pytest.raises(AuthError):
            await manager.refresh_access_token()

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(httpx.ConnectError("no route to host"))
        manager = make_manager(settings, token_store, endpoint)
        await manager.initialize()

        with pytest.raises(AuthError):
            await manager.refresh_access_token()

    @pytest.mark.asyncio
    async def test_new_refresh_token_replaces_old(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(token_response(refresh_token="1//rotated"))
        manager = make_manager(settings, token_store, endpoint)
        await manager.initialize()

        await manager.refresh_access_token()

        assert manager.tokens.refresh_token == "1//rotated"

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_request(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(token_response())
        manager = make_manager(settings, token_store, endpoint)
        await manager.initialize()

        await asyncio.gather(*(manager.refresh_access_token() for _ in range(5)))

        assert len(endpoint.forms) == 1
        assert manager.tokens.access_token == "ya29.new-access"

    @pytest.mark.asyncio
    async def test_client_secret_sent_when_configured(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(token_response())
        manager = make_manager(replace(settings, client_secret="shh"), token_store, endpoint)
        await manager.initialize()

        await manager.refresh_access_token()

        assert endpoint.forms[0]["client_secret"] == "shh"


class TestAccessToken:

    @pytest.mark.asyncio
    async def test_unauthenticated_raises(self, settings, token_store):
        manager = make_manager(settings, token_store)
        with pytest.raises(AuthError):
            await manager.get_access_token()

    @pytest.mark.asyncio
    async def test_refreshes_inside_expiry_buffer(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        endpoint = TokenEndpoint(token_response())
        manager = make_manager(settings, token_store, endpoint)
        await manager.initialize()
        manager.tokens.expires_at = NOW + 120

        assert await manager.get_access_token() == "ya29.new-access"
        assert len(endpoint.forms) == 1

    @pytest.mark.asyncio
    async def test_ensure_valid(self, settings, token_store):
        manager = make_manager(settings, token_store)
        assert await manager.ensure_valid() is False

        store_tokens(token_store, expires_in=3600)
        await manager.initialize()
        assert await manager.ensure_valid() is True

    @pytest.mark.asyncio
    async def test_clear(self, settings, token_store):
        store_tokens(token_store, expires_in=3600)
        token_store.set(gt_config.CODE_VERIFIER_KEY, "verifier")
        manager = make_manager(settings, token_store)
        await manager.initialize()

        manager.clear()

        assert manager.state == AuthState.UNAUTHENTICATED
        assert token_store.get(gt_config.TOKEN_DATA_KEY) is None
        assert token_store.get(gt_config.CODE_VERIFIER_KEY) is None


class TestAuthorize:

    @pytest.mark.asyncio
    async def test_full_flow(self, settings, token_store):
        endpoint = TokenEndpoint(token_response(refresh_token="1//fresh"))
        browser = FakeBrowser(query="?code=auth-code-123")
        manager = make_manager(settings, token_store, endpoint, browser)

        assert await manager.authorize() is True
        await browser.finish()

        form = endpoint.forms[0]
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "auth-code-123"
        assert code_challenge(form["code_verifier"]) == browser.params["code_challenge"]
        assert form["redirect_uri"] == browser.params["redirect_uri"]
        assert browser.params["redirect_uri"].startswith("http://localhost:")

        assert manager.state == AuthState.AUTHENTICATED
        assert token_store.get(gt_config.TOKEN_DATA_KEY)["refresh_token"] == "1//fresh"
        assert token_store.get(gt_config.CODE_VERIFIER_KEY) is None
        assert token_store.get(gt_config.REDIRECT_URI_KEY) is None

    @pytest.mark.asyncio
    async def test_denied_by_user(self, settings, token_store):
        endpoint = TokenEndpoint(token_response())
        browser = FakeBrowser(query="?error=access_denied")
        manager = make_manager(settings, token_store, endpoint, browser)

        with pytest.raises(AuthError) as exc_info:
            await manager.authorize()
        await browser.finish()

        assert exc_info.value.error_code == "access_denied"
        assert endpoint.forms == []
        assert manager.state == AuthState.UNAUTHENTICATED
        assert token_store.get(gt_config.CODE_VERIFIER_KEY) is None

    @pytest.mark.asyncio
    async def test_timeout_releases_listener(self, settings, token_store):
        browser = FakeBrowser()
        manager = make_manager(replace(settings, auth_timeout=0.2), token_store, browser=browser)

        with pytest.raises(AuthError):
            await manager.authorize()

        port = urlparse(browser.params["redirect_uri"]).port
        async with CallbackServer(port) as server:
            assert server.port == port
        assert manager.state == AuthState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_second_call_while_running_is_noop(self, settings, token_store):
        browser = FakeBrowser()
        manager = make_manager(replace(settings, auth_timeout=0.5), token_store, browser=browser)

        first = asyncio.ensure_future(manager.authorize())
        await asyncio.sleep(0.05)
        assert manager.state == AuthState.AUTHORIZING

        assert await manager.authorize() is False

        with pytest.raises(AuthError):
            await first
        assert len(browser.urls) == 1

    @pytest.mark.asyncio
    async def test_missing_client_id(self, settings, token_store):
        manager = make_manager(replace(settings, client_id=""), token_store)
        with pytest.raises(AuthError):
            await manager.authorize()

    @pytest.mark.asyncio
    async def test_exchange_failure(self, settings, token_store):
        endpoint = TokenEndpoint(httpx.Response(400, json={
            "error": "invalid_grant",
            "error_description": "Bad Request",
        }))
        browser = FakeBrowser(query="?code=stale-code")
        manager = make_manager(settings, token_store, endpoint, browser)

        with pytest.raises(AuthError) as exc_info:
            await manager.authorize()
        await browser.finish()

        assert exc_info.value.error_code == "invalid_grant"
        assert manager.tokens is None


class TestParseOauthError:

    def test_oauth_error(self):
        response = httpx.Response(400, json={"error": "invalid_client", "error_description": "Unauthorized"})
        assert parse_oauth_error(response) == ("invalid_client", "invalid_client: Unauthorized")

    def test_unparsable_body(self):
        error_code, message = parse_oauth_error(httpx.Response(502, text="<html>Bad Gateway</html>"))
        assert error_code is None
        assert "502" in message

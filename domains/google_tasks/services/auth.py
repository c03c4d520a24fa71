"""Google OAuth 2.0 (Authorization Code + PKCE) token lifecycle.

States:
- UNAUTHENTICATED: no token set held
- AUTHORIZING: browser flow running, waiting for the redirect
- AUTHENTICATED: token set held
- REFRESHING: a refresh request is in flight

Transitions:
- UNAUTHENTICATED → AUTHORIZING → AUTHENTICATED: authorize() succeeds
- AUTHENTICATED → REFRESHING → AUTHENTICATED: refresh succeeds
- REFRESHING → UNAUTHENTICATED: server answers invalid_grant
"""

import asyncio
import base64
import hashlib
import secrets
import time
import webbrowser
from typing import Callable, Optional
from urllib.parse import urlencode

import httpx

from logger import logger
from utils.log_sanitizer import sanitize_for_log
from .. import config
from ..errors import AuthError
from ..types import AuthSession, AuthState, SyncSettings, TokenSet
from .callback_server import CallbackServer
from .token_store import TokenStore


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier(num_bytes: int = config.CODE_VERIFIER_BYTES) -> str:
    """Random PKCE code verifier (base64url, no padding)."""
    return _base64url(secrets.token_bytes(num_bytes))


def code_challenge(verifier: str) -> str:
    """S256 challenge for a code verifier."""
    return _base64url(hashlib.sha256(verifier.encode("ascii")).digest())


def parse_oauth_error(response: httpx.Response) -> tuple[Optional[str], str]:
    """Return ``(error_code, message)`` from a token endpoint error response."""
    try:
        data = response.json()
    except ValueError:
        return None, f"HTTP {response.status_code} {response.reason_phrase}: {sanitize_for_log(response.text)}"

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str):
            description = data.get("error_description")
            return error, f"{error}: {description}" if description else error
        if isinstance(error, dict):
            return error.get("status"), str(error.get("message", error))

    return None, f"HTTP {response.status_code} {response.reason_phrase}"


class TokenManager:
    """Owns the token set: authorization, persistence, refresh and invalidation.

    Usage:
        tokens = TokenManager(SyncSettings.from_config(), TokenStore(TOKEN_STORE_DB))
        await tokens.initialize()
        if not tokens.is_authenticated():
            await tokens.authorize()
        access_token = await tokens.get_access_token()
    """

    def __init__(
        self,
        settings: SyncSettings,
        store: TokenStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ):
        self.settings = settings
        self.store = store
        self._transport = transport
        self._clock = clock
        self._open_browser = open_browser

        self._tokens: Optional[TokenSet] = None
        self._authorizing = False
        self._refresh_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        if self._refresh_task is not None and not self._refresh_task.done():
            return AuthState.REFRESHING
        if self._authorizing:
            return AuthState.AUTHORIZING
        if self._tokens is not None:
            return AuthState.AUTHENTICATED
        return AuthState.UNAUTHENTICATED

    @property
    def tokens(self) -> Optional[TokenSet]:
        return self._tokens

    def is_authenticated(self) -> bool:
        """True if a token set is held and is outside the expiry buffer."""
        return (
            self._tokens is not None
            and not self._tokens.expires_within(config.TOKEN_EXPIRY_BUFFER, self._clock())
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load persisted tokens, refreshing once if they are about to expire.

        A failed refresh drops the in-memory token set; the stored refresh
        token is only deleted when Google rejects it (invalid_grant).
        """
        self._tokens = self._load_tokens()
        if self._tokens is None:
            logger.info("No stored Google Tasks tokens")
            return

        if self._tokens.expires_within(config.TOKEN_EXPIRY_BUFFER, self._clock()):
            try:
                await self.refresh_access_token()
            except AuthError as e:
                logger.error(f"Error refreshing stored Google Tasks token: {e}")
                self._tokens = None
                return

        logger.info("Google Tasks tokens loaded")

    async def ensure_valid(self) -> bool:
        """Refresh proactively when inside the expiry buffer.

        Returns True if usable tokens are held afterwards.
        """
        if self._tokens is None:
            return False

        if self._tokens.expires_within(config.TOKEN_EXPIRY_BUFFER, self._clock()):
            try:
                await self.refresh_access_token()
            except AuthError as e:
                logger.warning(f"Proactive token refresh failed: {e}")
                return False

        return self.is_authenticated()

    async def get_access_token(self) -> str:
        """Return a usable access token, refreshing first if needed."""
        if self._tokens is None:
            raise AuthError("Not authenticated with Google Tasks")

        if self._tokens.expires_within(config.TOKEN_EXPIRY_BUFFER, self._clock()):
            await self.refresh_access_token()

        if self._tokens is None:
            raise AuthError("Not authenticated with Google Tasks")
        return self._tokens.access_token

    def clear(self) -> None:
        """Wipe the token set and any PKCE artifacts to force re-authentication."""
        self._tokens = None
        self.store.delete(config.TOKEN_DATA_KEY, config.CODE_VERIFIER_KEY, config.REDIRECT_URI_KEY)
        logger.info("Google Tasks authentication data cleared")

    # ------------------------------------------------------------------
    # Authorization code flow
    # ------------------------------------------------------------------

    def build_authorization_url(self, session: AuthSession) -> str:
        params = {
            "client_id": self.settings.client_id,
            "redirect_uri": session.redirect_uri,
            "response_type": "code",
            "scope": config.TASKS_SCOPE,
            "code_challenge": code_challenge(session.code_verifier),
            "code_challenge_method": "S256",
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{config.AUTH_ENDPOINT}?{urlencode(params)}"

    async def authorize(self) -> bool:
        """Run the browser authorization flow and store the resulting tokens.

        Returns:
            True once this call has stored new tokens, False if another
            authorization was already running (nothing was done)

        Raises:
            AuthError: if the user denies access, the wait times out, the
                listener cannot bind, or the code exchange fails
        """
        if self._authorizing:
            logger.info("Authorization already in progress")
            return False

        if not self.settings.client_id:
            raise AuthError("GOOGLE_CLIENT_ID is not configured")

        self._authorizing = True
        try:
            server = CallbackServer(self.settings.oauth_port)
            try:
                await server.start()
            except OSError as e:
                raise AuthError(
                    f"Could not start the callback listener on port {self.settings.oauth_port}: {e}"
                ) from e

            async with server:
                session = AuthSession(
                    code_verifier=generate_code_verifier(),
                    redirect_uri=f"http://localhost:{server.port}{config.CALLBACK_PATH}",
                )
                self.store.set(config.CODE_VERIFIER_KEY, session.code_verifier)
                self.store.set(config.REDIRECT_URI_KEY, session.redirect_uri)

                auth_url = self.build_authorization_url(session)
                logger.info("Opening browser for Google Tasks authorization")
                if not self._open_browser(auth_url):
                    logger.warning(f"Could not open a browser, visit this URL manually: {auth_url}")

                try:
                    code = await asyncio.wait_for(server.wait_for_code(), timeout=self.settings.auth_timeout)
                except asyncio.TimeoutError:
                    raise AuthError(
                        f"No authorization received within {self.settings.auth_timeout:.0f} seconds"
                    ) from None

                await self._exchange_code(code)

            logger.info("Successfully authenticated with Google Tasks")
            return True
        finally:
            self.store.delete(config.CODE_VERIFIER_KEY, config.REDIRECT_URI_KEY)
            self._authorizing = False

    async def _exchange_code(self, code: str) -> None:
        """Exchange the authorization code for access and refresh tokens."""
        code_verifier = self.store.get(config.CODE_VERIFIER_KEY)
        if not code_verifier:
            raise AuthError("Code verifier not found")

        redirect_uri = self.store.get(config.REDIRECT_URI_KEY)
        if not redirect_uri:
            raise AuthError("Redirect URI not found")

        logger.info(f"Exchanging authorization code (redirect_uri={redirect_uri})")
        response = await self._post_token({
            "client_id": self.settings.client_id,
            "code": code,
            "code_verifier": code_verifier,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        })

        if not response.is_success:
            error_code, message = parse_oauth_error(response)
            logger.error(f"Token request failed with status {response.status_code}: {message}")
            raise AuthError(f"Token request failed: {message}", error_code=error_code)

        self._store_token_response(response)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh_access_token(self) -> None:
        """Exchange the refresh token for a new access token.

        Concurrent callers share one in-flight request.

        Raises:
            AuthError: refresh failed; on invalid_grant all token state is cleared
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh())
        await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> None:
        refresh_token = self._tokens.refresh_token if self._tokens else None
        if not refresh_token:
            raise AuthError("No refresh token available")

        logger.info("Refreshing Google Tasks access token...")
        response = await self._post_token({
            "client_id": self.settings.client_id,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        })

        if not response.is_success:
            error_code, message = parse_oauth_error(response)
            if error_code == "invalid_grant":
                logger.warning("Refresh token rejected (invalid_grant), re-authorization required")
                self.clear()
            else:
                logger.error(f"Token refresh failed with status {response.status_code}: {message}")
            raise AuthError(f"Token refresh failed: {message}", error_code=error_code)

        self._store_token_response(response, previous_refresh_token=refresh_token)
        logger.info("Google Tasks token refreshed successfully")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _post_token(self, data: dict) -> httpx.Response:
        if self.settings.client_secret:
            data = {**data, "client_secret": self.settings.client_secret}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=config.REQUEST_TIMEOUT) as client:
                return await client.post(config.TOKEN_ENDPOINT, data=data)
        except httpx.HTTPError as e:
            raise AuthError(f"Token endpoint unreachable: {e}") from e

    def _store_token_response(self, response: httpx.Response, previous_refresh_token: Optional[str] = None) -> None:
        try:
            payload = response.json()
        except ValueError as e:
            raise AuthError(f"Unreadable token response: {sanitize_for_log(response.text)}") from e

        if not isinstance(payload, dict) or "access_token" not in payload:
            raise AuthError("Token response did not include an access token")

        self._tokens = TokenSet(
            access_token=payload["access_token"],
            # Google omits the refresh token on refresh responses
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=self._clock() + float(payload.get("expires_in", 3600)),
        )
        self.store.set(config.TOKEN_DATA_KEY, self._tokens.to_dict())

    def _load_tokens(self) -> Optional[TokenSet]:
        data = self.store.get(config.TOKEN_DATA_KEY)
        if data is None:
            return None
        try:
            return TokenSet.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Error parsing stored token data: {e}")
            return None

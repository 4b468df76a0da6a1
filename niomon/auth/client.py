"""
Niomon OAuth client: PKCE login (redirect and popup), token persistence, expiry
tracking and silent refresh.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable
from urllib.parse import parse_qs, quote, urlencode, urlsplit, urlunsplit

import httpx
from loguru import logger
from pydantic import ValidationError

from niomon.auth.models import (
    AuthState,
    AuthenticationStatus,
    OpenIdConfiguration,
    TokenResponse,
    UserInfoResponse,
)
from niomon.auth.popup import Navigator, PopupOpener, popup_features, wait_authorization_response
from niomon.auth.storage import KeyValueStore, session_store
from niomon.auth.token_manager import StoreTokenManager, TokenManager
from niomon.bridge.channel import Window
from niomon.config.schema import ClientConfig, SessionConfig
from niomon.utils.exceptions import (
    AuthStateMismatchError,
    AuthStateNotFoundError,
    AuthorizationError,
    AuthorizationRequiredError,
    ConfigurationError,
    DecodeError,
    EmptyAccessTokenError,
    MissingCallbackParamsError,
    PopupBlockedError,
    RefreshTokenMissingError,
    sanitize_error_message,
)
from niomon.utils.helpers import base64url, random_string, resolve_service_host, sha256

AUTH_STATE_STORAGE_KEY = "niomon.auth_state"


class NiomonClient:
    """
    OAuth2/OIDC session manager for a Niomon client id.

    Tokens live in the token manager (long-lived scope by default). PKCE state for the
    login in progress lives in the short-lived store and is dropped once a code
    exchange that used it succeeds.
    """

    def __init__(
        self,
        options: ClientConfig | dict[str, Any],
        token_manager: TokenManager | None = None,
        *,
        session: SessionConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        auth_state_store: KeyValueStore | None = None,
        window: Window | None = None,
        popup_opener: PopupOpener | None = None,
        navigator: Navigator | None = None,
        clock: Callable[[], float] = time.time,
        storage_dir: Path | None = None,
    ):
        try:
            parsed = options if isinstance(options, ClientConfig) else ClientConfig.model_validate(options)
        except ValidationError as e:
            raise ConfigurationError(f"invalid client options: {e}") from e
        # Own copy: set_redirect_uri must not leak into a shared config object.
        self.options = parsed.model_copy()
        self.session = session or SessionConfig()
        self.token_manager: TokenManager = token_manager or StoreTokenManager(
            self.options.client_id,
            storage=self.options.storage,
            directory=storage_dir,
        )
        self.auth_state_store = auth_state_store if auth_state_store is not None else session_store()
        self.window = window
        self.popup_opener = popup_opener
        self.navigator = navigator
        self.clock = clock
        self._transport = transport
        self.http = httpx.AsyncClient(base_url=self.options.base_url, transport=transport)
        self._openid_configuration: OpenIdConfiguration | None = None

    async def __aenter__(self) -> NiomonClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def get_authenticated_http(self, refresh_if_needed: bool = True) -> httpx.AsyncClient:
        """
        HTTP client carrying the current access token as a bearer credential.

        The caller owns the returned client and must close it.
        """
        status = await self.authentication_status(refresh_if_needed)
        access_token = status.access_token if status else await self.get_token_silently()
        if not access_token:
            raise AuthorizationRequiredError()
        return httpx.AsyncClient(
            base_url=self.options.base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=self._transport,
        )

    def set_redirect_uri(self, redirect_uri: str) -> None:
        self.options.redirect_uri = redirect_uri

    async def set_access_token(self, access_token: str) -> None:
        await self.token_manager.add("access_token", access_token)

    def build_auth_url(self, params: dict[str, str] | None = None) -> str:
        """
        Authorization endpoint URL for a new login attempt.

        Generates and persists fresh PKCE state; ``params`` override the defaults.
        """
        state = self.generate_auth_state()
        query: dict[str, str] = {
            "client_id": self.options.client_id,
            "response_type": "code",
            "response_mode": "query",
            "redirect_uri": self.options.redirect_uri,
            "state": state.state,
            "code_challenge": state.code_challenge,
            "code_challenge_method": "S256",
        }
        query.update(params or {})
        return f"{self.options.base_url}oidc/authorize?{urlencode(query, quote_via=quote)}"

    def login_with_redirect(self) -> str:
        """Navigate the host to the authorization page; returns the URL."""
        if self.navigator is None:
            raise ConfigurationError("redirect login requires a navigator", field="navigator")
        url = self.build_auth_url()
        self.navigator.assign(url)
        return url

    async def logout(self) -> None:
        logger.info("Logging out client {}", self.options.client_id)
        await self.token_manager.remove("access_token")
        await self.token_manager.remove("token_response")

    async def get_token_silently(self) -> str | None:
        """Stored access token, without network traffic."""
        return await self.token_manager.get("access_token")

    async def get_token_with_popup(self) -> str:
        """Run the popup login and return the new access token."""
        if self.popup_opener is None or self.window is None:
            raise ConfigurationError("popup login requires a window and a popup opener", field="popup_opener")
        redirect_uri = self._popup_redirect_uri()
        url = self.build_auth_url({"redirect_uri": redirect_uri, "response_mode": "web_message"})
        popup = self.popup_opener.open(
            url, popup_features(self.session.popup_width, self.session.popup_height)
        )
        if popup is None:
            raise PopupBlockedError()
        message_origin = resolve_service_host(url, "app")
        response = await wait_authorization_response(
            popup, self.window, message_origin, self.session.popup_poll_interval
        )
        token = await self.exchange_auth_code(response.code, redirect_uri=redirect_uri)
        await self.handle_token_response(token)
        return token.access_token

    def _popup_redirect_uri(self) -> str:
        if self.navigator is None:
            return self.options.redirect_uri
        parts = urlsplit(self.navigator.current_url())
        return urlunsplit(parts._replace(query=""))

    async def handle_auth_callback(self, url: str | None = None) -> None:
        """
        Complete the redirect flow from the callback URL (default: the navigator's).

        A ``state`` parameter that differs from the persisted one is rejected.
        """
        if url is None:
            if self.navigator is None:
                raise ConfigurationError("callback handling requires a URL or a navigator", field="navigator")
            url = self.navigator.current_url()
        params = {k: v[0] for k, v in parse_qs(urlsplit(url).query).items() if v}
        code = params.get("code")
        error = params.get("error")
        if not code and not error:
            raise MissingCallbackParamsError()
        if error:
            logger.error("OAuth error: {}", error)
            raise AuthorizationError(error)

        returned_state = params.get("state")
        if returned_state is not None:
            auth_state = self.get_auth_state()
            if auth_state is None:
                raise AuthStateNotFoundError()
            if auth_state.state != returned_state:
                raise AuthStateMismatchError()

        token = await self.exchange_auth_code(code)
        await self.handle_token_response(token)

    async def handle_auth_code_response(self, code: str, code_verifier: str) -> None:
        token = await self.exchange_auth_code(code, code_verifier)
        await self.handle_token_response(token)

    async def exchange_auth_code(
        self,
        code: str,
        code_verifier: str | None = None,
        *,
        redirect_uri: str | None = None,
    ) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        Without an explicit verifier the persisted PKCE state is used, and cleared once
        the exchange succeeds.
        """
        uses_stored_state = not code_verifier
        verifier = code_verifier
        if not verifier:
            auth_state = self.get_auth_state()
            if auth_state is None:
                raise AuthStateNotFoundError()
            verifier = auth_state.code_verifier

        resp = await self.http.post(
            "oidc/token",
            json={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri or self.options.redirect_uri,
                "client_id": self.options.client_id,
                "code_verifier": verifier,
            },
        )
        resp.raise_for_status()
        token = self._parse_token_response(resp)
        if uses_stored_state:
            self.clear_auth_state()
        return token

    async def refresh_access_token(self, refresh_token: str | None = None) -> None:
        """Refresh using ``refresh_token`` or the stored one, then persist the new record."""
        if not refresh_token:
            response = await self._last_token_response()
            refresh_token = response.refresh_token if response else None
        if not refresh_token:
            raise RefreshTokenMissingError()

        logger.debug("Refreshing access token for client {}", self.options.client_id)
        resp = await self.http.post(
            "oidc/token",
            json={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.options.client_id,
            },
        )
        resp.raise_for_status()
        await self.handle_token_response(self._parse_token_response(resp))

    async def handle_token_response(self, token: TokenResponse | dict[str, Any]) -> None:
        """Persist access token, full record and absolute expiry."""
        if isinstance(token, dict):
            if not token.get("access_token"):
                raise EmptyAccessTokenError()
            token = self._validate_token(token)
        if not token.access_token:
            raise EmptyAccessTokenError()

        expires_at = self.clock() + token.expires_in
        # The access token is kept on its own so requests need no record decoding.
        await self.token_manager.add("access_token", token.access_token)
        await self.token_manager.add_object("token_response", token.model_dump(mode="json", exclude_none=True))
        await self.token_manager.add("expires_at", f"{expires_at}")

    async def get_user(self) -> UserInfoResponse:
        access_token = await self.get_token_silently()
        if not access_token:
            raise AuthorizationRequiredError()
        resp = await self.http.get("oidc/userinfo", headers={"Authorization": f"Bearer {access_token}"})
        resp.raise_for_status()
        try:
            return UserInfoResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise DecodeError(f"invalid userinfo response: {e}", source="oidc/userinfo") from e

    async def is_authenticated(self) -> bool:
        status = await self.authentication_status()
        return status is not None and not status.expired

    async def authentication_status(self, refresh_if_needed: bool = True) -> AuthenticationStatus | None:
        """
        Current status derived from the stored record, or None when anonymous.

        A token expiring within ``refresh_window_seconds`` is refreshed once when a
        refresh token is stored; a failed refresh reports the session as expired.
        An unreadable stored record reads as anonymous.
        """
        try:
            response = await self._last_token_response()
            expires_at = await self._token_expires_at()
        except ValueError as e:
            logger.warning(
                "Unable to parse authorization response from token manager: {}",
                sanitize_error_message(str(e)),
            )
            return None
        if response is None:
            return None

        now = self.clock()
        expiring_soon = expires_at is not None and expires_at - self.session.refresh_window_seconds < now
        refresh_failed = False
        if expiring_soon and response.refresh_token and refresh_if_needed:
            logger.debug("Access token is expired / expiring soon, refreshing as needed")
            try:
                await self.refresh_access_token(response.refresh_token)
            except (httpx.HTTPError, DecodeError, EmptyAccessTokenError) as e:
                logger.warning("Access token refresh failed: {}", sanitize_error_message(str(e)))
                refresh_failed = True
            else:
                return await self.authentication_status(False)

        expired = refresh_failed or (expires_at is not None and expires_at < now)
        return AuthenticationStatus(
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            id_token=response.id_token,
            expired=expired,
        )

    async def fetch_openid_configuration(self) -> OpenIdConfiguration:
        if self._openid_configuration is not None:
            return self._openid_configuration
        resp = await self.http.get(".well-known/openid-configuration")
        resp.raise_for_status()
        try:
            self._openid_configuration = OpenIdConfiguration.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise DecodeError(f"invalid openid configuration: {e}", source="openid-configuration") from e
        return self._openid_configuration

    def generate_auth_state(self) -> AuthState:
        length = self.session.random_string_length
        state = random_string(length)
        code_verifier = random_string(length)
        code_challenge = base64url(sha256(code_verifier))
        self.auth_state_store.set(f"{AUTH_STATE_STORAGE_KEY}.state", state)
        self.auth_state_store.set(f"{AUTH_STATE_STORAGE_KEY}.codeVerifier", code_verifier)
        self.auth_state_store.set(f"{AUTH_STATE_STORAGE_KEY}.codeChallenge", code_challenge)
        return AuthState(state=state, code_verifier=code_verifier, code_challenge=code_challenge)

    def get_auth_state(self) -> AuthState | None:
        state = self.auth_state_store.get(f"{AUTH_STATE_STORAGE_KEY}.state")
        code_verifier = self.auth_state_store.get(f"{AUTH_STATE_STORAGE_KEY}.codeVerifier")
        code_challenge = self.auth_state_store.get(f"{AUTH_STATE_STORAGE_KEY}.codeChallenge")
        if not state or not code_verifier or not code_challenge:
            return None
        return AuthState(state=state, code_verifier=code_verifier, code_challenge=code_challenge)

    def clear_auth_state(self) -> None:
        for name in ("state", "codeVerifier", "codeChallenge"):
            self.auth_state_store.remove(f"{AUTH_STATE_STORAGE_KEY}.{name}")

    @staticmethod
    def _validate_token(data: Any) -> TokenResponse:
        try:
            return TokenResponse.model_validate(data)
        except ValidationError as e:
            raise DecodeError(f"invalid token response: {e}", source="oidc/token") from e

    def _parse_token_response(self, resp: httpx.Response) -> TokenResponse:
        try:
            data = resp.json()
        except ValueError as e:
            raise DecodeError(f"token response is not JSON: {e}", source="oidc/token") from e
        if isinstance(data, dict) and not data.get("access_token"):
            raise EmptyAccessTokenError()
        return self._validate_token(data)

    async def _last_token_response(self) -> TokenResponse | None:
        data = await self.token_manager.get_object("token_response")
        if data is None:
            return None
        return TokenResponse.model_validate(data)

    async def _token_expires_at(self) -> float | None:
        value = await self.token_manager.get("expires_at")
        if not value:
            return None
        expires_at = float(value)
        return expires_at or None

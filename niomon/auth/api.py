"""Niomon backend authentication API (``/authn/v1``)."""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from niomon.utils.exceptions import DecodeError


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class StartAuthenticationRequest(_CamelModel):
    client_id: str
    redirect_uri: str
    code_challenge_method: str
    code_challenge: str
    client_state: str


class WebAuthnResponse(_CamelModel):
    user_handle: str


class AuthenticateWebAuthnRequest(_CamelModel):
    state_token: str
    id: str
    response: WebAuthnResponse


class SendEmailPasscodeRequest(_CamelModel):
    state_token: str
    email: str
    login_or_signup: bool


class SendSmsPasscodeRequest(_CamelModel):
    state_token: str
    phone_number: str
    login_or_signup: bool


class AuthenticatePasscodeRequest(_CamelModel):
    state_token: str
    code: str


class StartWalletAuthenticateRequest(_CamelModel):
    state_token: str
    client_id: str
    address: str
    uri: str
    domain: str
    login_or_signup: bool


class AuthenticateWalletRequest(_CamelModel):
    state_token: str
    signature: str


class GetAuthenticationStateRequest(_CamelModel):
    state_token: str


class GetEnrollmentStateRequest(_CamelModel):
    state_token: str


class DittoGetUserInfoRequest(_CamelModel):
    state_token: str


class DittoSignUpRequest(_CamelModel):
    state_token: str
    username: str
    tos_version: int
    subscribe_marketing: bool


class AuthenticationState(_CamelModel):
    state_token: str
    status: str
    wallet_challenge: str | None = None


class EnrollmentState(_CamelModel):
    state_token: str
    status: str
    card_layout_id: str | None = None


class DittoGetUserInfoResponse(_CamelModel):
    user_id: str
    sign_up_completed: bool


RequestT = TypeVar("RequestT", bound=_CamelModel)
ResponseT = TypeVar("ResponseT", bound=_CamelModel)


class NiomonAuthnAPI:
    """
    Thin client for the authentication backend.

    Requests accept either a request model or a dict (snake_case or camelCase keys);
    bodies are sent as camelCase JSON and responses are validated.
    """

    def __init__(self, base_url: str, *, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.http = httpx.AsyncClient(base_url=self.base_url, transport=transport)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _post(
        self,
        path: str,
        model: type[RequestT],
        req: RequestT | dict[str, Any],
        response_model: type[ResponseT] | None,
    ) -> ResponseT | None:
        body = req if isinstance(req, model) else model.model_validate(req)
        logger.debug("authn: POST {}", path)
        resp = await self.http.post(path, json=body.model_dump(by_alias=True, exclude_none=True))
        resp.raise_for_status()
        if response_model is None:
            return None
        try:
            return response_model.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise DecodeError(f"invalid response from {path}: {e}", source=path) from e

    async def start_authentication(
        self, req: StartAuthenticationRequest | dict[str, Any]
    ) -> AuthenticationState:
        return await self._post("authn/v1/start", StartAuthenticationRequest, req, AuthenticationState)

    async def authenticate_webauthn(
        self, req: AuthenticateWebAuthnRequest | dict[str, Any]
    ) -> AuthenticationState:
        return await self._post(
            "authn/v1/webauthn/authenticate", AuthenticateWebAuthnRequest, req, AuthenticationState
        )

    async def send_email_passcode(self, req: SendEmailPasscodeRequest | dict[str, Any]) -> AuthenticationState:
        return await self._post("authn/v1/otp/email/send", SendEmailPasscodeRequest, req, AuthenticationState)

    async def send_sms_passcode(self, req: SendSmsPasscodeRequest | dict[str, Any]) -> AuthenticationState:
        return await self._post("authn/v1/otp/sms/send", SendSmsPasscodeRequest, req, AuthenticationState)

    async def authenticate_passcode(
        self, req: AuthenticatePasscodeRequest | dict[str, Any]
    ) -> AuthenticationState:
        return await self._post(
            "authn/v1/otp/authenticate", AuthenticatePasscodeRequest, req, AuthenticationState
        )

    async def start_wallet_authenticate(
        self, network_name: str, req: StartWalletAuthenticateRequest | dict[str, Any]
    ) -> AuthenticationState:
        return await self._post(
            f"authn/v1/wallet/{network_name}/start", StartWalletAuthenticateRequest, req, AuthenticationState
        )

    async def authenticate_wallet(
        self, network_name: str, req: AuthenticateWalletRequest | dict[str, Any]
    ) -> AuthenticationState:
        return await self._post(
            f"authn/v1/wallet/{network_name}/authenticate", AuthenticateWalletRequest, req, AuthenticationState
        )

    async def get_authentication_state(
        self, req: GetAuthenticationStateRequest | dict[str, Any]
    ) -> AuthenticationState:
        return await self._post("authn/v1/get", GetAuthenticationStateRequest, req, AuthenticationState)

    async def get_enrollment_state(self, req: GetEnrollmentStateRequest | dict[str, Any]) -> EnrollmentState:
        return await self._post(
            "authn/v1/enrollment/get-enrollmenttoken-state", GetEnrollmentStateRequest, req, EnrollmentState
        )

    async def ditto_get_user_info(
        self, req: DittoGetUserInfoRequest | dict[str, Any]
    ) -> DittoGetUserInfoResponse:
        return await self._post("authn/v1/ditto/userinfo", DittoGetUserInfoRequest, req, DittoGetUserInfoResponse)

    async def ditto_sign_up(self, req: DittoSignUpRequest | dict[str, Any]) -> None:
        await self._post("authn/v1/ditto/signup", DittoSignUpRequest, req, None)

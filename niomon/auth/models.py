"""Validated shapes crossing the OAuth/OIDC boundary."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, field_validator


class TokenResponse(BaseModel):
    """Token endpoint response."""

    model_config = ConfigDict(extra="allow")

    expires_in: float
    access_token: str
    token_type: str
    refresh_token: str | None = None
    scope: list[str] | None = None
    id_token: str | None = None

    @field_validator("scope", mode="before")
    @classmethod
    def _split_scope(cls, value: object) -> object:
        # RFC 6749 servers send a space separated string.
        if isinstance(value, str):
            return value.split()
        return value


class UserInfoResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    sub: str
    name: str
    email: str | None = None
    email_verified: bool | None = None
    phone_number: str | None = None
    phone_number_verified: bool | None = None


class OpenIdConfiguration(BaseModel):
    model_config = ConfigDict(extra="allow")

    issuer: str | None = None
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None
    userinfo_endpoint: str | None = None
    revocation_endpoint: str | None = None
    registration_endpoint: str | None = None
    end_session_endpoint: str | None = None


class AuthorizationResponse(BaseModel):
    """Body of an ``authorization_response`` web message."""

    model_config = ConfigDict(extra="allow")

    code: str
    state: str | None = None


@dataclass(frozen=True)
class AuthState:
    """PKCE material of one login attempt."""

    state: str
    code_verifier: str
    code_challenge: str


@dataclass(frozen=True)
class AuthenticationStatus:
    access_token: str
    refresh_token: str | None
    id_token: str | None
    expired: bool

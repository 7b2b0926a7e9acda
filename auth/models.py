"""Payloads exchanged with the auth endpoints."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

UserRole = Literal["superadmin", "admin", "manager", "operator", "viewer"]


class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    company_id: str = Field(alias="companyId")
    company_code: str | None = Field(default=None, alias="companyCode")
    name: str
    email: str
    role: UserRole
    is_active: bool = Field(default=True, alias="isActive")
    last_login: str | None = Field(default=None, alias="lastLogin")


class AuthTokens(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class AuthResult(BaseModel):
    """Inner ``data`` of a login / company registration response."""

    model_config = ConfigDict(extra="allow")

    user: User
    tokens: AuthTokens
    company: dict | None = None


class RefreshResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")

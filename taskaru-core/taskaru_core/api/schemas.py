"""
Request Schemas
===============
Bodies accepted by the security endpoints. Field names follow the
browser client's camelCase.
"""

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class SendOTPRequest(_Body):
    phone_number: str = Field(alias="phoneNumber", min_length=1, max_length=32)


class VerifyOTPRequest(_Body):
    phone_number: str = Field(alias="phoneNumber", min_length=1, max_length=32)
    otp: str = Field(min_length=1, max_length=16)


class AdminLoginRequest(_Body):
    email: str = Field(min_length=1, max_length=254)
    password: str = Field(min_length=1, max_length=1024)


class RefreshRequest(_Body):
    refresh_token: str = Field(alias="refreshToken", min_length=1)

from typing import Optional

from pydantic import Field, field_validator

from taskmanager.schemas.common import CamelModel, UtcDatetime, enforce
from taskmanager.utils import validation as rules


class UserRegister(CamelModel):
    name: str = Field(default=None, validate_default=True)
    email: str = Field(default=None, validate_default=True)
    password: str = Field(default=None, validate_default=True)

    @field_validator("name", mode="before")
    @classmethod
    def name_length(cls, v):
        return enforce(rules.name(v))

    @field_validator("email", mode="before")
    @classmethod
    def email_format(cls, v):
        return enforce(rules.email(v))

    @field_validator("password", mode="before")
    @classmethod
    def password_strength(cls, v):
        """Length, bcrypt's 72-byte ceiling and the three character classes."""
        return enforce(rules.password(v))


class UserLogin(CamelModel):
    email: str = Field(default=None, validate_default=True)
    password: str = Field(default=None, validate_default=True)

    @field_validator("email", mode="before")
    @classmethod
    def email_format(cls, v):
        return enforce(rules.email(v))

    @field_validator("password", mode="before")
    @classmethod
    def password_present(cls, v):
        return enforce(rules.required(v, "Password is required"))


class ProfileUpdate(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_length(cls, v):
        return enforce(rules.name(v))

    @field_validator("email", mode="before")
    @classmethod
    def email_format(cls, v):
        return enforce(rules.email(v))


class PasswordChange(CamelModel):
    current_password: str = Field(default=None, validate_default=True)
    new_password: str = Field(default=None, validate_default=True)

    @field_validator("current_password", mode="before")
    @classmethod
    def current_present(cls, v):
        return enforce(rules.required(v, "Current password is required"))

    @field_validator("new_password", mode="before")
    @classmethod
    def new_strength(cls, v):
        return enforce(rules.password(v, label="New password"))


class UserOut(CamelModel):
    id: str
    name: str
    email: str
    role: str
    is_active: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime


def serialize_user(user) -> dict:
    return UserOut.model_validate(user).model_dump(by_alias=True, mode="json")

import re
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")
PASSWORD_RULES = "Password must contain at least one uppercase letter, one number, and one special character."


def check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long.")
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(PASSWORD_RULES)
    return value


def check_digits(value: str, field_name: str) -> str:
    value = value.strip()
    if not value.isdigit():
        raise ValueError(f"{field_name} must contain digits only")
    return value


class PhoneBody(BaseModel):
    phone_code: str
    phone_number: str

    @field_validator("phone_code")
    @classmethod
    def phone_code_digits(cls, value: str) -> str:
        return check_digits(value.lstrip("+"), "phone_code")

    @field_validator("phone_number")
    @classmethod
    def phone_number_digits(cls, value: str) -> str:
        return check_digits(value, "phone_number")


class RegisterBase(PhoneBody):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr | None = None
    password: str
    gender: Literal[1, 2, 3]
    terms_and_condition: Literal[1]
    country_id: int | None = Field(default=None, ge=1)
    city_id: int | None = Field(default=None, ge=1)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return check_password_strength(value)


class UserRegister(RegisterBase):
    pass


class VerifyUserOtp(BaseModel):
    user_id: int = Field(ge=1)
    otp: str = Field(min_length=4, max_length=6)


class ResendUserOtp(BaseModel):
    user_id: int = Field(ge=1)


class UserProfileUpdate(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None
    gender: Literal[1, 2, 3] | None = None
    country_id: int | None = Field(default=None, ge=1)
    city_id: int | None = Field(default=None, ge=1)


class ChangePassword(BaseModel):
    old_password: str
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("New password and confirm password do not match")
        return self


class DeleteAccount(BaseModel):
    password: str = Field(min_length=1)

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from marketplace.schemas.user import PhoneBody, check_password_strength


class LoginRequest(PhoneBody):
    password: str = Field(min_length=1)


class ForgotPasswordRequest(PhoneBody):
    pass


class VerifyForgotPasswordOtp(BaseModel):
    user_id: int = Field(ge=1)
    otp: str = Field(min_length=4, max_length=6)


class ResetPasswordRequest(BaseModel):
    reset_token: str = Field(min_length=1)
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Password and confirm password do not match")
        return self


class AdminLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

import re
from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, EmailStr, Field, model_validator
from pydantic_core import PydanticCustomError

from pontocarro.schemas.validation import ApiModel


PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,50}$"
)


def check_password(value: str) -> str:
    if len(value) < 8:
        raise PydanticCustomError("password_length", "A senha deve ter pelo menos 8 caracteres")
    if len(value) > 50:
        raise PydanticCustomError("password_length", "A senha deve ter no máximo 50 caracteres")
    if not PASSWORD_PATTERN.match(value):
        raise PydanticCustomError(
            "password_strength",
            "A senha deve conter pelo menos uma letra maiúscula, uma letra minúscula, "
            "um número e um caractere especial (@$!%*?&)",
        )
    return value


def check_phone(value: Optional[str]) -> Optional[str]:
    """
    Phones are kept as digits only: DDD + number, 10 or 11 digits.
    Common punctuation is accepted on input and stripped.
    """
    if value is None:
        return None
    if re.search(r"[^\d\s()+\-.]", value):
        raise PydanticCustomError("phone_format", "Telefone deve conter apenas números")
    digits = re.sub(r"\D", "", value)
    if not 10 <= len(digits) <= 11:
        raise PydanticCustomError("phone_length", "Telefone deve ter 10 ou 11 dígitos")
    return digits


def check_email(value: str) -> str:
    if len(value) > 150:
        raise PydanticCustomError("email_length", "E-mail muito longo")
    return value.lower()


Username = Annotated[str, Field(min_length=3, max_length=100)]
Email = Annotated[EmailStr, AfterValidator(check_email)]
Password = Annotated[str, AfterValidator(check_password)]
Phone = Annotated[str, AfterValidator(check_phone)]
Place = Annotated[str, Field(min_length=1, max_length=100)]


class UserCreate(ApiModel):
    username: Username
    email: Email
    password: Password
    confirm_password: Optional[str] = None
    phone: Optional[Phone] = None
    city: Optional[Place] = None
    state: Optional[Place] = None

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise PydanticCustomError("password_mismatch", "As senhas não coincidem")
        return self


class UserUpdate(ApiModel):
    username: Optional[Username] = None
    email: Optional[Email] = None
    phone: Optional[Phone] = None
    city: Optional[Place] = None
    state: Optional[Place] = None


class LoginRequest(ApiModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ForgotPasswordRequest(ApiModel):
    email: Email


class ResetPasswordRequest(ApiModel):
    password: Password


class RefreshTokenRequest(ApiModel):
    refresh_token: Optional[str] = None


class UserResponse(ApiModel):
    id: int
    username: str
    email: str
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    created_at: datetime

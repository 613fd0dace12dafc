import logging
from datetime import datetime
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Body, Depends, Request, status
from sqlalchemy.orm import Session

from pontocarro.api.deps import (
    get_app_settings,
    get_mailer,
    get_rate_limiter,
    get_token_service,
)
from pontocarro.core.config import Settings
from pontocarro.core.database import get_db
from pontocarro.core.errors import ApiError, validation_failed
from pontocarro.models.user import User
from pontocarro.schemas.user import (
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    ResetPasswordRequest,
    UserCreate,
    UserResponse,
)
from pontocarro.schemas.validation import validate
from pontocarro.services.email import EmailDeliveryError, Mailer, send_reset_email
from pontocarro.services.rate_limit import RateLimiter
from pontocarro.services.security import (
    InvalidTokenError,
    TokenService,
    generate_token_with_expiry,
    hash_password,
    hash_token,
    verify_password,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_CREDENTIALS = "Credenciais inválidas"
INVALID_REFRESH = "Refresh token inválido ou expirado"
INVALID_RESET = "Token de redefinição de senha inválido ou expirado."

JsonBody = Annotated[Dict[str, Any], Body(...)]


def issue_tokens(db: Session, user: User, tokens: TokenService) -> Dict[str, str]:
    """New access/refresh pair; the refresh token replaces the stored one."""
    access_token = tokens.create_access_token(user.id)
    refresh_token = tokens.create_refresh_token(user.id)
    user.refresh_token = refresh_token
    db.add(user)
    db.commit()
    return {"accessToken": access_token, "refreshToken": refresh_token}


def public_user(user: User) -> Dict[str, Any]:
    return UserResponse.model_validate(user).model_dump(mode="json", by_alias=True)


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register_user(
    payload: JsonBody,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
):
    result = validate(UserCreate, payload)
    if not result.ok:
        raise validation_failed(result.errors)
    user_in = result.value

    if db.query(User).filter(User.email == user_in.email).first():
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Usuário com este e-mail já existe")

    if user_in.phone and db.query(User).filter(User.phone == user_in.phone).first():
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Usuário com este telefone já existe")

    user = User(
        username=user_in.username,
        email=user_in.email,
        hashed_password=hash_password(user_in.password, settings.BCRYPT_ROUNDS),
        phone=user_in.phone,
        city=user_in.city,
        state=user_in.state,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User %s registered", user.id)

    issued = issue_tokens(db, user, tokens)
    return {"message": "Usuário registrado com sucesso", "userId": user.id, **issued}


@router.post("/login")
def login(
    payload: JsonBody,
    db: Annotated[Session, Depends(get_db)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
):
    result = validate(LoginRequest, payload)
    if not result.ok:
        raise validation_failed(result.errors, "Por favor, preencha todos os campos")
    credentials = result.value

    user = db.query(User).filter(User.email == credentials.email.lower()).first()
    # Same answer for unknown e-mail and wrong password
    if not user or not verify_password(credentials.password, user.hashed_password):
        raise ApiError(status.HTTP_400_BAD_REQUEST, INVALID_CREDENTIALS)

    issued = issue_tokens(db, user, tokens)
    return {"message": "Login bem-sucedido", "user": public_user(user), **issued}


@router.post("/refresh-token")
def refresh_access_token(
    payload: JsonBody,
    db: Annotated[Session, Depends(get_db)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
):
    result = validate(RefreshTokenRequest, payload)
    if not result.ok:
        raise validation_failed(result.errors)
    refresh_token = result.value.refresh_token

    if not refresh_token:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Refresh token não fornecido")

    try:
        user_id = tokens.decode_refresh_token(refresh_token)
    except InvalidTokenError:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, INVALID_REFRESH)

    user = db.get(User, user_id)
    # Only the most recently issued refresh token is accepted
    if user is None or user.refresh_token != refresh_token:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, INVALID_REFRESH)

    issued = issue_tokens(db, user, tokens)
    return {"message": "Novo access token gerado com sucesso", **issued}


@router.post("/forgot-password")
def forgot_password(
    payload: JsonBody,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    mailer: Annotated[Mailer, Depends(get_mailer)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
):
    result = validate(ForgotPasswordRequest, payload)
    if not result.ok:
        raise validation_failed(result.errors)
    email = result.value.email

    ip = request.client.host if request.client else "unknown"
    limit = settings.FORGOT_PASSWORD_LIMIT_PER_HOUR
    limiter.hit(f"forgot:email:{email}:hour", limit, 3600)
    limiter.hit(f"forgot:ip:{ip}:hour", limit * 4, 3600)

    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise ApiError(status.HTTP_404_NOT_FOUND, "Usuário não encontrado")

    token, token_hash, expires_at = generate_token_with_expiry(settings.RESET_TOKEN_TTL_MINUTES)
    user.reset_token_hash = token_hash
    user.reset_token_expires_at = expires_at
    db.add(user)
    db.commit()

    try:
        send_reset_email(mailer, user.email, user.username, token)
    except EmailDeliveryError as exc:
        logger.error("Reset e-mail for user %s not delivered: %s", user.id, exc)
        raise ApiError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Erro do servidor ao enviar e-mail de redefinição de senha",
        )

    return {"message": "Instruções de redefinição de senha enviadas para o seu e-mail"}


@router.post("/reset-password/{reset_token}")
def reset_password(
    reset_token: str,
    payload: JsonBody,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
):
    user = (
        db.query(User)
        .filter(
            User.reset_token_hash == hash_token(reset_token),
            User.reset_token_expires_at > datetime.utcnow(),
        )
        .first()
    )
    if not user:
        raise ApiError(status.HTTP_400_BAD_REQUEST, INVALID_RESET)

    result = validate(ResetPasswordRequest, payload)
    if not result.ok:
        raise validation_failed(result.errors)

    user.hashed_password = hash_password(result.value.password, settings.BCRYPT_ROUNDS)
    user.reset_token_hash = None
    user.reset_token_expires_at = None
    # A password reset ends the active session
    user.refresh_token = None
    db.add(user)
    db.commit()
    logger.info("Password reset for user %s", user.id)
    return {"message": "Senha redefinida com sucesso!"}

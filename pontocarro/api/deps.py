from typing import Annotated, Optional

from fastapi import Depends, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from pontocarro.core.config import Settings
from pontocarro.core.database import get_db
from pontocarro.core.errors import ApiError
from pontocarro.models.user import User
from pontocarro.models.vehicle import Vehicle
from pontocarro.services.email import Mailer
from pontocarro.services.images import ImageService
from pontocarro.services.ownership import get_owned_or_404
from pontocarro.services.rate_limit import RateLimiter
from pontocarro.services.security import InvalidTokenError, TokenService


# auto_error=False: a missing header is answered with our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

VEHICLE_NOT_FOUND = "Veículo não encontrado ou você não tem permissão para alterá-lo"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(settings: Annotated[Settings, Depends(get_app_settings)]) -> TokenService:
    return TokenService(settings)


def get_image_service(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> ImageService:
    return ImageService(settings, request.app.state.storage)


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_current_user(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    credentials_exception = ApiError(
        status.HTTP_401_UNAUTHORIZED,
        "Token inválido ou expirado",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED,
            "Token não fornecido, autorização negada",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = tokens.decode_access_token(token)
    except InvalidTokenError:
        raise credentials_exception

    user = db.get(User, user_id)
    if user is None:
        raise credentials_exception

    return user


def get_owned_vehicle(
    vehicle_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> Vehicle:
    return get_owned_or_404(db, Vehicle, vehicle_id, current_user.id, VEHICLE_NOT_FOUND)


DbSession = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
OwnedVehicle = Annotated[Vehicle, Depends(get_owned_vehicle)]

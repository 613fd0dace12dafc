import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Body, Depends, Request, status

from pontocarro.api.deps import CurrentUser, DbSession, get_image_service
from pontocarro.api.vehicles import parse_query, vehicle_page
from pontocarro.core.errors import ApiError, validation_failed
from pontocarro.models.user import User
from pontocarro.models.vehicle import Vehicle
from pontocarro.schemas.user import UserResponse, UserUpdate
from pontocarro.schemas.validation import validate
from pontocarro.schemas.vehicle import VehicleListParams, VehiclePage
from pontocarro.services.images import ImageService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])

Images = Annotated[ImageService, Depends(get_image_service)]

# Columns that cannot be cleared with null
REQUIRED_PROFILE_FIELDS = ("username", "email")


@router.get("/profile", response_model=UserResponse)
def get_profile(current_user: CurrentUser):
    return current_user


@router.put("/profile")
def update_profile(
    payload: Annotated[Dict[str, Any], Body(...)],
    current_user: CurrentUser,
    db: DbSession,
):
    result = validate(UserUpdate, payload)
    if not result.ok:
        raise validation_failed(result.errors)

    changes = {
        field: value
        for field, value in result.value.model_dump(exclude_unset=True).items()
        if value is not None or field not in REQUIRED_PROFILE_FIELDS
    }

    email = changes.get("email")
    if email and db.query(User).filter(User.email == email, User.id != current_user.id).first():
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Este e-mail já está em uso")

    phone = changes.get("phone")
    if phone and db.query(User).filter(User.phone == phone, User.id != current_user.id).first():
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Este telefone já está em uso")

    for field, value in changes.items():
        setattr(current_user, field, value)
    db.add(current_user)
    db.commit()
    db.refresh(current_user)

    return {
        "message": "Perfil atualizado com sucesso",
        "user": UserResponse.model_validate(current_user).model_dump(mode="json", by_alias=True),
    }


@router.get("/vehicles", response_model=VehiclePage)
def list_own_vehicles(request: Request, current_user: CurrentUser, db: DbSession, images: Images):
    params = parse_query(VehicleListParams, request)
    return vehicle_page(db, images, params, [Vehicle.owner_id == current_user.id])


@router.delete("/delete")
def delete_account(current_user: CurrentUser, db: DbSession, images: Images):
    user_id = current_user.id
    vehicle_ids = [vehicle_id for (vehicle_id,) in db.query(Vehicle.id).filter(Vehicle.owner_id == user_id)]
    for vehicle_id in vehicle_ids:
        images.remove_vehicle_folder(vehicle_id)

    # Vehicles and their images go with the user through the ORM cascade
    db.delete(current_user)
    db.commit()
    logger.info("User %s deleted with %s vehicles", user_id, len(vehicle_ids))
    return {"message": "Usuário excluído com sucesso"}

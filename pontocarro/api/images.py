from typing import Annotated, List

from fastapi import APIRouter, Depends, status

from pontocarro.api.deps import DbSession, get_image_service
from pontocarro.core.errors import ApiError
from pontocarro.models.image import Image
from pontocarro.schemas.image import ImageOut
from pontocarro.services.images import ImageService


router = APIRouter(prefix="/images", tags=["images"])

Images = Annotated[ImageService, Depends(get_image_service)]

NO_IMAGES = "Nenhuma imagem encontrada para este veículo."


@router.get("/item/{image_id}", response_model=ImageOut)
def get_image(image_id: str, db: DbSession, images: Images):
    image = db.get(Image, image_id)
    if image is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "Imagem não encontrada.")
    return images.to_out(image)


@router.get("/{vehicle_id}", response_model=List[ImageOut])
def list_vehicle_images(vehicle_id: str, db: DbSession, images: Images):
    rows = (
        db.query(Image)
        .filter(Image.vehicle_id == vehicle_id)
        .order_by(Image.created_at, Image.id)
        .all()
    )
    if not rows:
        raise ApiError(status.HTTP_404_NOT_FOUND, NO_IMAGES)
    return [images.to_out(image) for image in rows]


@router.get("/{vehicle_id}/first", response_model=ImageOut)
def first_vehicle_image(vehicle_id: str, db: DbSession, images: Images):
    """Cover image of a vehicle: the earliest one uploaded."""
    image = (
        db.query(Image)
        .filter(Image.vehicle_id == vehicle_id)
        .order_by(Image.created_at, Image.id)
        .first()
    )
    if image is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, NO_IMAGES)
    return images.to_out(image)

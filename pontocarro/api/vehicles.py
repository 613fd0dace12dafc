import logging
from typing import Annotated, Any, Dict, List, Optional, Sequence

from fastapi import APIRouter, Body, Depends, File, Request, UploadFile, status
from sqlalchemy.orm import Session

from pontocarro.api.deps import (
    CurrentUser,
    DbSession,
    OwnedVehicle,
    get_app_settings,
    get_image_service,
)
from pontocarro.core.config import Settings
from pontocarro.core.errors import ApiError, validation_failed
from pontocarro.models.image import Image
from pontocarro.models.vehicle import Vehicle
from pontocarro.schemas.image import ImageUploadResponse
from pontocarro.schemas.validation import validate
from pontocarro.schemas.vehicle import (
    CityStateParams,
    VehicleCreate,
    VehicleListParams,
    VehicleOut,
    VehiclePage,
    VehicleSearchParams,
    VehicleSummary,
    VehicleUpdate,
)
from pontocarro.services.images import ImageService, IncomingImage
from pontocarro.services.ownership import get_owned_or_404
from pontocarro.services.storage import StorageError
from pontocarro.services.vehicle_query import (
    build_search_filter,
    find_by_city_state,
    paginate_vehicles,
    total_pages,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vehicles", tags=["vehicles"])

Images = Annotated[ImageService, Depends(get_image_service)]


def summarize(db: Session, images: ImageService, vehicles: Sequence[Vehicle]) -> List[VehicleSummary]:
    covers = images.cover_urls(db, [vehicle.id for vehicle in vehicles])
    return [
        VehicleSummary.model_validate(vehicle).model_copy(update={"first_image_url": covers.get(vehicle.id)})
        for vehicle in vehicles
    ]


def vehicle_detail(images: ImageService, vehicle: Vehicle) -> VehicleOut:
    image_outs = [images.to_out(image) for image in vehicle.images]
    return VehicleOut.model_validate(vehicle).model_copy(
        update={
            "images": image_outs,
            "first_image_url": image_outs[0].image_url if image_outs else None,
        }
    )


def vehicle_page(
    db: Session,
    images: ImageService,
    params: VehicleListParams,
    predicates: Sequence[Any] = (),
) -> VehiclePage:
    vehicles, total = paginate_vehicles(db, params, predicates)
    return VehiclePage(
        vehicles=summarize(db, images, vehicles),
        current_page=params.page,
        total_pages=total_pages(total, params.limit),
        total_vehicles=total,
    )


def parse_query(schema, request: Request):
    result = validate(schema, dict(request.query_params))
    if not result.ok:
        raise validation_failed(result.errors)
    return result.value


@router.get("", response_model=VehiclePage)
def list_vehicles(request: Request, db: DbSession, images: Images):
    params = parse_query(VehicleListParams, request)
    return vehicle_page(db, images, params)


@router.get("/search", response_model=VehiclePage)
def search_vehicles(request: Request, db: DbSession, images: Images):
    params = parse_query(VehicleSearchParams, request)
    return vehicle_page(db, images, params, build_search_filter(params))


@router.get("/by-city-state", response_model=List[VehicleSummary])
def vehicles_by_city_state(request: Request, db: DbSession, images: Images):
    result = validate(CityStateParams, dict(request.query_params))
    if not result.ok:
        raise validation_failed(result.errors, "Informe a cidade e o estado para a busca")
    params = result.value
    return summarize(db, images, find_by_city_state(db, params.city, params.state))


@router.get("/{vehicle_id}", response_model=VehicleOut)
def get_vehicle(vehicle_id: str, db: DbSession, images: Images):
    vehicle = db.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "Veículo não encontrado")
    return vehicle_detail(images, vehicle)


@router.post("", response_model=VehicleOut, status_code=status.HTTP_201_CREATED)
def create_vehicle(
    payload: Annotated[Dict[str, Any], Body(...)],
    current_user: CurrentUser,
    db: DbSession,
    images: Images,
):
    result = validate(VehicleCreate, payload)
    if not result.ok:
        raise validation_failed(result.errors)

    # The owner always comes from the token
    vehicle = Vehicle(owner_id=current_user.id, **result.value.model_dump())
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    logger.info("Vehicle %s created by user %s", vehicle.id, current_user.id)
    return vehicle_detail(images, vehicle)


@router.put("/{vehicle_id}")
def update_vehicle(
    payload: Annotated[Dict[str, Any], Body(...)],
    vehicle: OwnedVehicle,
    db: DbSession,
    images: Images,
):
    result = validate(VehicleUpdate, payload)
    if not result.ok:
        raise validation_failed(result.errors)

    # Every vehicle column is required, so null means "leave unchanged"
    changes = {
        field: value
        for field, value in result.value.model_dump(exclude_unset=True).items()
        if value is not None
    }
    for field, value in changes.items():
        setattr(vehicle, field, value)
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)

    return {
        "message": "Veículo atualizado com sucesso",
        "vehicle": vehicle_detail(images, vehicle).model_dump(mode="json", by_alias=True),
    }


@router.delete("/{vehicle_id}")
def delete_vehicle(vehicle: OwnedVehicle, db: DbSession, images: Images):
    vehicle_id = vehicle.id
    images.remove_vehicle_folder(vehicle_id)
    db.delete(vehicle)
    db.commit()
    logger.info("Vehicle %s deleted", vehicle_id)
    return {"message": "Veículo excluído com sucesso"}


@router.post(
    "/{vehicle_id}/images",
    response_model=ImageUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_images(
    vehicle: OwnedVehicle,
    db: DbSession,
    images: Images,
    settings: Annotated[Settings, Depends(get_app_settings)],
    files: Annotated[Optional[List[UploadFile]], File(alias="images")] = None,
):
    if not files:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Nenhuma imagem enviada")

    limit = settings.MAX_IMAGES_PER_VEHICLE
    existing = images.count_for_vehicle(db, vehicle.id)
    if existing + len(files) > limit:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            f"Não é possível enviar mais de {limit} imagens. Você já tem {existing} imagens.",
        )

    incoming: List[IncomingImage] = []
    for file in files:
        content_type = file.content_type or ""
        if not content_type.startswith("image/"):
            raise ApiError(
                status.HTTP_400_BAD_REQUEST,
                f"O arquivo {file.filename} não é uma imagem",
            )

        data = await file.read()
        if not data:
            raise ApiError(status.HTTP_400_BAD_REQUEST, f"O arquivo {file.filename} está vazio")
        if len(data) > settings.max_image_size_bytes:
            raise ApiError(
                status.HTTP_400_BAD_REQUEST,
                f"O arquivo {file.filename} excede o limite de {settings.MAX_IMAGE_SIZE_MB} MB",
            )
        incoming.append(IncomingImage(filename=file.filename or "", content_type=content_type, data=data))

    try:
        stored = images.store(db, vehicle, incoming)
    except StorageError as exc:
        logger.error("Upload for vehicle %s failed: %s", vehicle.id, exc)
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Erro ao enviar imagens")

    return ImageUploadResponse(
        message="Imagens enviadas com sucesso",
        images=[images.url_for(image.storage_key) for image in stored],
        image_ids=[image.id for image in stored],
    )


@router.delete("/{vehicle_id}/images/{image_id}")
def delete_image(image_id: str, vehicle: OwnedVehicle, db: DbSession, images: Images):
    # An image is owned through its vehicle
    image = get_owned_or_404(db, Image, image_id, vehicle.id, "Imagem não encontrada para este veículo")

    images.remove_object(image.storage_key)
    db.delete(image)
    db.commit()
    return {"message": "Imagem excluída com sucesso"}

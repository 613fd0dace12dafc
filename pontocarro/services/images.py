import logging
import mimetypes
import re
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pontocarro.core.config import Settings
from pontocarro.models.image import Image
from pontocarro.models.vehicle import Vehicle
from pontocarro.schemas.image import ImageOut
from pontocarro.services.storage import ImageStorage, StorageError


logger = logging.getLogger(__name__)


@dataclass
class IncomingImage:
    filename: str
    content_type: str
    data: bytes


def vehicle_folder(vehicle_id: str) -> str:
    return f"vehicles/{vehicle_id}/"


def _extension(filename: Optional[str], content_type: str) -> str:
    if filename and "." in filename:
        ext = "." + filename.rsplit(".", 1)[1].lower()
        if re.fullmatch(r"\.[a-z0-9]{1,5}", ext):
            return ext
    return mimetypes.guess_extension(content_type) or ""


class ImageService:
    """Stores vehicle images on the image host and resolves their public URLs."""

    def __init__(self, settings: Settings, storage: ImageStorage) -> None:
        self.settings = settings
        self.storage = storage

    @property
    def delivery_flags(self) -> str:
        size = self.settings.IMAGE_MAX_DIMENSION
        return f"f_auto,q_auto,c_limit,w_{size},h_{size}"

    def url_for(self, storage_key: str) -> str:
        """Canonical URL: CDN base + delivery flags + key, or the raw object URL."""
        if self.settings.IMAGE_CDN_BASE_URL:
            return f"{self.settings.IMAGE_CDN_BASE_URL}/{self.delivery_flags}/{storage_key}"
        return self.storage.object_url(storage_key)

    def new_key(self, vehicle_id: str, filename: Optional[str], content_type: str) -> str:
        return f"{vehicle_folder(vehicle_id)}{uuid.uuid4()}{_extension(filename, content_type)}"

    def to_out(self, image: Image) -> ImageOut:
        return ImageOut(
            id=image.id,
            vehicle_id=image.vehicle_id,
            image_url=self.url_for(image.storage_key),
            created_at=image.created_at,
        )

    def cover_urls(self, db: Session, vehicle_ids: Iterable[str]) -> Dict[str, str]:
        """First image (by creation time) of each vehicle, one query for the whole page."""
        vehicle_ids = list(vehicle_ids)
        if not vehicle_ids:
            return {}

        first_created = (
            select(Image.vehicle_id, func.min(Image.created_at).label("first_created"))
            .where(Image.vehicle_id.in_(vehicle_ids))
            .group_by(Image.vehicle_id)
            .subquery()
        )
        rows = db.execute(
            select(Image.vehicle_id, Image.storage_key)
            .join(
                first_created,
                (Image.vehicle_id == first_created.c.vehicle_id)
                & (Image.created_at == first_created.c.first_created),
            )
            .order_by(Image.id)
        ).all()

        covers: Dict[str, str] = {}
        for vehicle_id, storage_key in rows:
            covers.setdefault(vehicle_id, self.url_for(storage_key))
        return covers

    def count_for_vehicle(self, db: Session, vehicle_id: str) -> int:
        return db.scalar(select(func.count(Image.id)).where(Image.vehicle_id == vehicle_id)) or 0

    def store(self, db: Session, vehicle: Vehicle, files: List[IncomingImage]) -> List[Image]:
        """
        Upload every file and add one Image row per file, committing once.
        On failure nothing is committed and objects already uploaded are removed.
        """
        saved_keys: List[str] = []
        images: List[Image] = []
        try:
            for incoming in files:
                key = self.new_key(vehicle.id, incoming.filename, incoming.content_type)
                logger.info("Uploading image %s for vehicle %s", key, vehicle.id)
                self.storage.save(key, incoming.data, incoming.content_type)
                saved_keys.append(key)

                image = Image(
                    vehicle_id=vehicle.id,
                    storage_key=key,
                    image_url=self.url_for(key),
                    content_type=incoming.content_type,
                    size_bytes=len(incoming.data),
                )
                db.add(image)
                images.append(image)
                # Flush per row so created_at keeps upload order
                db.flush()
            db.commit()
        except Exception:
            db.rollback()
            for key in saved_keys:
                self.remove_object(key)
            raise

        for image in images:
            db.refresh(image)
        return images

    def remove_object(self, storage_key: str) -> bool:
        """Best effort: a failure is logged, never raised."""
        try:
            self.storage.delete(storage_key)
            return True
        except StorageError as exc:
            logger.warning("Failed to delete image %s from storage: %s", storage_key, exc)
            return False

    def remove_vehicle_folder(self, vehicle_id: str) -> int:
        """Best effort removal of every object stored for a vehicle."""
        try:
            deleted = self.storage.delete_prefix(vehicle_folder(vehicle_id))
            logger.info("Removed %s stored images of vehicle %s", deleted, vehicle_id)
            return deleted
        except StorageError as exc:
            logger.warning("Failed to delete image folder of vehicle %s: %s", vehicle_id, exc)
            return 0

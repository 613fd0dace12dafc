from typing import Any, Optional, Type, TypeVar

from fastapi import status
from sqlalchemy.orm import Session

from pontocarro.core.errors import ApiError


Model = TypeVar("Model")


def find_owned(db: Session, model: Type[Model], entity_id: Any, owner_id: Any) -> Optional[Model]:
    """Load an entity only if its owner column matches owner_id."""
    owner_column = getattr(model, model.owner_column)
    return (
        db.query(model)
        .filter(model.id == entity_id, owner_column == owner_id)
        .first()
    )


def get_owned_or_404(
    db: Session,
    model: Type[Model],
    entity_id: Any,
    owner_id: Any,
    message: str,
) -> Model:
    """
    Ownership gate shared by every owner-only mutation.

    A missing entity and an entity owned by someone else get the same 404,
    so non-owners cannot probe for existence.
    """
    entity = find_owned(db, model, entity_id, owner_id)
    if entity is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, message)
    return entity

"""
Listing and search queries for vehicles.

A search filter is built by folding an ordered list of predicate
constructors over the query parameters. Each constructor is a pure
function ``(params) -> clause | None``; the clauses that are not None are
ANDed together.
"""
import math
from typing import Callable, List, Optional, Sequence

from sqlalchemy import String, and_, func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from pontocarro.core.database import strip_accents
from pontocarro.models.vehicle import Vehicle
from pontocarro.schemas.vehicle import VehicleListParams, VehicleSearchParams


Predicate = Optional[ColumnElement]
PredicateBuilder = Callable[[VehicleSearchParams], Predicate]

# Columns a free-text "name" token is matched against
NAME_COLUMNS = (
    Vehicle.title,
    Vehicle.brand,
    Vehicle.vehicle_model,
    Vehicle.color,
    Vehicle.state,
    Vehicle.city,
)

SORT_COLUMNS = {
    "created_at": Vehicle.created_at,
    "price": Vehicle.price,
    "year": Vehicle.year,
    "mileage": Vehicle.mileage,
    "title": Vehicle.title,
    "brand": Vehicle.brand,
}


def unaccented(column) -> ColumnElement:
    return func.unaccent(column, type_=String)


def contains_text(column, value: str) -> ColumnElement:
    """Case and accent insensitive substring match, LIKE wildcards escaped."""
    return unaccented(column).icontains(strip_accents(value), autoescape=True)


def equals_text(column, value: str) -> ColumnElement:
    return func.lower(unaccented(column)) == strip_accents(value).lower()


def name_predicate(params: VehicleSearchParams) -> Predicate:
    if not params.name:
        return None
    tokens = params.name.split()
    if not tokens:
        return None

    clauses = []
    for token in tokens:
        options = [contains_text(column, token) for column in NAME_COLUMNS]
        if token.isascii() and token.isdigit() and len(token) <= 4:
            options.append(Vehicle.year == int(token))
        clauses.append(or_(*options))
    return and_(*clauses)


def text_filter(field: str, column) -> PredicateBuilder:
    def build(params: VehicleSearchParams) -> Predicate:
        value = getattr(params, field)
        if not value:
            return None
        return contains_text(column, value)

    build.__name__ = f"{field}_predicate"
    return build


def range_filter(column, low_field: str, high_field: str) -> PredicateBuilder:
    def build(params: VehicleSearchParams) -> Predicate:
        low = getattr(params, low_field)
        high = getattr(params, high_field)
        clauses = []
        if low is not None:
            clauses.append(column >= low)
        if high is not None:
            clauses.append(column <= high)
        if not clauses:
            return None
        return and_(*clauses)

    build.__name__ = f"{column.key}_range_predicate"
    return build


def exact_year_predicate(params: VehicleSearchParams) -> Predicate:
    if params.year is None:
        return None
    return Vehicle.year == params.year


SEARCH_PREDICATES: Sequence[PredicateBuilder] = (
    name_predicate,
    text_filter("brand", Vehicle.brand),
    text_filter("vehicle_model", Vehicle.vehicle_model),
    text_filter("engine", Vehicle.engine),
    text_filter("fuel", Vehicle.fuel),
    text_filter("transmission", Vehicle.transmission),
    text_filter("body_type", Vehicle.body_type),
    text_filter("color", Vehicle.color),
    text_filter("state", Vehicle.state),
    text_filter("city", Vehicle.city),
    exact_year_predicate,
    range_filter(Vehicle.year, "min_year", "max_year"),
    range_filter(Vehicle.price, "min_price", "max_price"),
    range_filter(Vehicle.mileage, "min_mileage", "max_mileage"),
)


def build_search_filter(
    params: VehicleSearchParams,
    builders: Sequence[PredicateBuilder] = SEARCH_PREDICATES,
) -> List[ColumnElement]:
    predicates: List[ColumnElement] = []
    for builder in builders:
        clause = builder(params)
        if clause is not None:
            predicates.append(clause)
    return predicates


def city_state_filter(city: str, state: str) -> List[ColumnElement]:
    return [equals_text(Vehicle.city, city), equals_text(Vehicle.state, state)]


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def paginate_vehicles(
    db: Session,
    params: VehicleListParams,
    predicates: Sequence[ColumnElement] = (),
):
    """Return (vehicles on the requested page, total matching count)."""
    sort_column = SORT_COLUMNS[params.sort_column]
    order = sort_column.desc() if params.descending else sort_column.asc()

    query = select(Vehicle).where(*predicates).order_by(order, Vehicle.id).offset(params.offset).limit(params.limit)
    vehicles = db.scalars(query).all()

    total = db.scalar(select(func.count(Vehicle.id)).where(*predicates)) or 0
    return vehicles, total


def find_by_city_state(db: Session, city: str, state: str) -> List[Vehicle]:
    query = (
        select(Vehicle)
        .where(*city_state_filter(city, state))
        .order_by(Vehicle.created_at.desc(), Vehicle.id)
    )
    return list(db.scalars(query).all())

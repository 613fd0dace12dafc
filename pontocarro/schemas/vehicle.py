from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, Field
from pydantic_core import PydanticCustomError

from pontocarro.schemas.image import ImageOut
from pontocarro.schemas.user import Email, Phone
from pontocarro.schemas.validation import ApiModel


def check_year(value: int) -> int:
    if value < 1900 or value > datetime.utcnow().year + 1:
        raise PydanticCustomError("year_range", "Ano inválido")
    return value


# Bounds keep query values inside a 64-bit database integer
MAX_PAGE = 1_000_000
MAX_YEAR = 9999
MAX_MILEAGE = 10_000_000

Title = Annotated[str, Field(min_length=1, max_length=100)]
ShortText = Annotated[str, Field(min_length=1, max_length=50)]
Place = Annotated[str, Field(min_length=1, max_length=100)]
Year = Annotated[int, AfterValidator(check_year)]
Price = Annotated[float, Field(ge=0, allow_inf_nan=False)]
Mileage = Annotated[int, Field(ge=0, le=MAX_MILEAGE)]
Description = Annotated[str, Field(min_length=1, max_length=1000)]
Features = Annotated[List[Annotated[str, Field(min_length=1, max_length=100)]], Field(max_length=10)]
AnnouncerName = Annotated[str, Field(min_length=3, max_length=100)]


class VehicleCreate(ApiModel):
    title: Title
    brand: ShortText
    vehicle_model: ShortText
    engine: ShortText
    year: Year
    price: Price
    mileage: Mileage
    state: Place
    city: Place
    fuel: ShortText
    transmission: ShortText
    body_type: ShortText
    color: ShortText
    description: Description
    features: Features = Field(default_factory=list)
    announcer_name: AnnouncerName
    announcer_email: Email
    announcer_phone: Phone


class VehicleUpdate(ApiModel):
    title: Optional[Title] = None
    brand: Optional[ShortText] = None
    vehicle_model: Optional[ShortText] = None
    engine: Optional[ShortText] = None
    year: Optional[Year] = None
    price: Optional[Price] = None
    mileage: Optional[Mileage] = None
    state: Optional[Place] = None
    city: Optional[Place] = None
    fuel: Optional[ShortText] = None
    transmission: Optional[ShortText] = None
    body_type: Optional[ShortText] = None
    color: Optional[ShortText] = None
    description: Optional[Description] = None
    features: Optional[Features] = None
    announcer_name: Optional[AnnouncerName] = None
    announcer_email: Optional[Email] = None
    announcer_phone: Optional[Phone] = None


SortField = Literal["createdAt", "created_at", "price", "year", "mileage", "title", "brand"]


class VehicleListParams(ApiModel):
    page: int = Field(1, ge=1, le=MAX_PAGE)
    limit: int = Field(10, ge=1, le=100)
    sort_by: SortField = "createdAt"
    sort_order: Optional[Literal["asc", "desc"]] = None

    @property
    def sort_column(self) -> str:
        return "created_at" if self.sort_by == "createdAt" else self.sort_by

    @property
    def descending(self) -> bool:
        if self.sort_order is None:
            return self.sort_column == "created_at"
        return self.sort_order == "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class VehicleSearchParams(VehicleListParams):
    name: Optional[str] = None
    brand: Optional[str] = None
    vehicle_model: Optional[str] = None
    engine: Optional[str] = None
    fuel: Optional[str] = None
    transmission: Optional[str] = None
    body_type: Optional[str] = None
    color: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    year: Optional[int] = Field(None, ge=0, le=MAX_YEAR)
    min_year: Optional[int] = Field(None, ge=0, le=MAX_YEAR)
    max_year: Optional[int] = Field(None, ge=0, le=MAX_YEAR)
    min_price: Optional[float] = Field(None, allow_inf_nan=False)
    max_price: Optional[float] = Field(None, allow_inf_nan=False)
    min_mileage: Optional[int] = Field(None, ge=0, le=MAX_MILEAGE)
    max_mileage: Optional[int] = Field(None, ge=0, le=MAX_MILEAGE)


class CityStateParams(ApiModel):
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)


class VehicleSummary(ApiModel):
    id: str
    owner_id: int
    title: str
    brand: str
    vehicle_model: str
    engine: str
    year: int
    price: float
    mileage: int
    state: str
    city: str
    fuel: str
    transmission: str
    body_type: str
    color: str
    announcer_name: str
    announcer_email: str
    announcer_phone: str
    created_at: datetime
    first_image_url: Optional[str] = None


class VehicleOut(VehicleSummary):
    description: str
    features: List[str] = Field(default_factory=list)
    images: List[ImageOut] = Field(default_factory=list)
    updated_at: Optional[datetime] = None


class VehiclePage(ApiModel):
    vehicles: List[VehicleSummary]
    current_page: int
    total_pages: int
    total_vehicles: int

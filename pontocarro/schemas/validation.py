from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel


T = TypeVar("T", bound=BaseModel)


class ApiModel(BaseModel):
    """Base for API schemas: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


@dataclass
class ValidationResult(Generic[T]):
    value: Optional[T] = None
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors


def format_errors(exc: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            "path": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]


def validate(schema: Type[T], data: Any) -> ValidationResult[T]:
    """
    Validate raw input against a schema without raising.

    Returns a result holding either the coerced model or the list of
    {"path", "message"} failures.
    """
    if data is None:
        data = {}
    try:
        return ValidationResult(value=schema.model_validate(data))
    except ValidationError as exc:
        return ValidationResult(errors=format_errors(exc))

from typing import Any, Dict, Optional, Type, TypeVar
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T", bound="ApiModel")


def safe_number(value: Any) -> float:
    """Coerce backend numbers ("12,5", None, "") to float, falling back to 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip().replace(",", "."))
    except ValueError:
        return 0.0


def first_present(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first truthy value among several historical field names."""
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return default


class ApiModel(BaseModel):
    """
    Base model for EDO backend payloads with camelCase alias handling.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @classmethod
    def from_payload(cls: Type[T], data: Optional[Dict[str, Any]]) -> Optional[T]:
        """Convert a backend JSON object to a model."""
        if not data:
            return None
        return cls.model_validate(data)

    def to_payload(self, exclude_none: bool = False) -> Dict[str, Any]:
        """Convert the model to a backend JSON object."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=exclude_none)

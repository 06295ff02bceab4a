from typing import Any, Iterable, Mapping, Type, TypeVar
from pydantic import BaseModel, ValidationError as PydanticValidationError

from src.shared.exceptions import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_LOCATION_PREFIXES = {"body", "query", "path", "form", "header"}


def field_errors(errors: Iterable[Mapping[str, Any]]) -> list[dict]:
    """Flatten pydantic error dicts into [{"field", "message"}]."""
    flattened = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in _LOCATION_PREFIXES:
            loc = loc[1:]
        flattened.append({"field": ".".join(loc) or "__root__", "message": error.get("msg", "Invalid value")})
    return flattened


def validate_payload(schema: Type[ModelT], payload: Mapping[str, Any]) -> ModelT:
    try:
        return schema.model_validate(dict(payload))
    except PydanticValidationError as e:
        raise ValidationError(field_errors(e.errors())) from e


def parse_form(schema: Type[ModelT], form: Mapping[str, Any]) -> ModelT:
    """
    Validate a submitted form against a schema.
    Only text fields take part; file parts are handled by the caller.
    """
    values = {key: value for key, value in form.items() if isinstance(value, str)}
    return validate_payload(schema, values)

"""
Facet-by-facet request validation with aggregated error reporting.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Type

import pydantic
from pydantic import BaseModel

from shared.errors import ValidationError
from shared.logging import get_logger


FACETS = ("body", "params", "query")


@dataclass(frozen=True)
class ValidationSchemas:
    """Optional pydantic model per request facet; ``None`` skips the facet."""

    body: Optional[Type[BaseModel]] = None
    params: Optional[Type[BaseModel]] = None
    query: Optional[Type[BaseModel]] = None


@dataclass(frozen=True)
class FieldError:
    facet: str
    path: str
    message: str

    def __str__(self) -> str:
        if self.path:
            return f"{self.facet}.{self.path}: {self.message}"
        return f"{self.facet}: {self.message}"


@dataclass
class ValidatedFacets:
    """Normalized facets; unvalidated facets keep their raw value."""

    body: Any = None
    params: Any = None
    query: Any = None


class SchemaValidator:
    """Validates every declared facet before deciding, never stopping at the first error."""

    def __init__(self) -> None:
        self.logger = get_logger("gateway.validation")

    def validate(self, schemas: ValidationSchemas, *, body: Any = None, params: Any = None,
                 query: Any = None, body_error: Optional[str] = None,
                 endpoint: Optional[str] = None) -> ValidatedFacets:
        """Validate every facet with a schema and return the normalized facets.

        ``body_error`` reports a body that could not be decoded; it stands in
        for the body facet's result while params and query are still checked.
        """
        raw = {"body": body, "params": params, "query": query}
        result = ValidatedFacets(**raw)
        errors: List[FieldError] = []

        for facet in FACETS:
            model = getattr(schemas, facet)
            if model is None:
                continue
            if facet == "body" and body_error:
                errors.append(FieldError(facet="body", path="", message=body_error))
                continue
            value, facet_errors = self._validate_facet(facet, model, raw[facet])
            if facet_errors:
                errors.extend(facet_errors)
            else:
                setattr(result, facet, value)

        if errors:
            messages = [str(error) for error in errors]
            self.logger.warning("Validation failed", errors=messages, endpoint=endpoint)
            raise ValidationError(messages)

        return result

    def _validate_facet(self, facet: str, model: Type[BaseModel],
                        value: Any) -> Tuple[Optional[BaseModel], List[FieldError]]:
        if value is None:
            # Missing body/params/query is validated as an empty object
            value = {}
        try:
            return model.model_validate(value), []
        except pydantic.ValidationError as exc:
            return None, [
                FieldError(
                    facet=facet,
                    path=".".join(str(part) for part in error["loc"]),
                    message=error["msg"],
                )
                for error in exc.errors()
            ]

"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models MUST inherit from
BaseResponseSchema; all request bodies from BaseCreateSchema.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for response schemas built from ORM objects.

    Properties on the models (root_id, remaining_amount, ...) are read like
    columns thanks to from_attributes.

    Usage:
        class InvoiceResponse(BaseResponseSchema):
            id: UUID
            invoice_number: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for request bodies.

    Business validation (reason length, rate > 0, quantities) is left to the
    services so every rule produces the same structured error.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


class CurrencyUpdateRequest(BaseCreateSchema):
    """Switch a document to another currency at a caller-supplied rate."""
    currency: str
    rate: Decimal


class ErrorResponse(BaseModel):
    """Body returned for every DocflowError."""
    error: str
    message: str
    retryable: bool = False
    detail: dict = {}


# Type aliases for common UUID patterns
OptionalUUID = Optional[UUID]

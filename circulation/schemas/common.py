from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from circulation.core.errors import CirculationError, ErrorKind

T = TypeVar("T")


class ServiceResult(BaseModel, Generic[T]):
    """Uniform response envelope: ``{success, data, errorMessage, successMessage, errorKind}``."""

    success: bool
    data: Optional[T] = None
    error_message: Optional[str] = None
    success_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def ok(cls, data: Optional[T] = None, message: Optional[str] = None) -> "ServiceResult[T]":
        return cls(success=True, data=data, success_message=message)

    @classmethod
    def fail(cls, error: CirculationError) -> "ServiceResult[T]":
        return cls(success=False, error_message=error.message, error_kind=error.kind)

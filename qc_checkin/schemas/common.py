from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    error_code: Optional[str] = None

class DatabaseError(ErrorResponse):
    error_code: str = "DATABASE_ERROR"


@dataclass(slots=True)
class QueryResult(Generic[T]):
    """
    Outcome of a persistence call: either `data` or an `error` message.
    Both empty means the query succeeded and found nothing.
    """
    data: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any = None) -> "QueryResult[Any]":
        return cls(data=data)

    @classmethod
    def failure(cls, message: str) -> "QueryResult[Any]":
        return cls(error=message)

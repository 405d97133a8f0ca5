"""Common schemas used across all modules."""
from pydantic import BaseModel
from typing import TypeVar, Generic, List


DataT = TypeVar("DataT")


class PaginatedResponse(BaseModel, Generic[DataT]):
    """Generic paginated response."""
    items: List[DataT]
    total: int
    page: int
    page_size: int
    total_pages: int


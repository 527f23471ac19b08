"""Response envelopes shared by all endpoints"""

from typing import Generic, List, TypeVar
from pydantic import BaseModel, Field


T = TypeVar('T')


class SuccessResponse(BaseModel, Generic[T]):
    """
    Envelope for single objects and short lists.

    Example:
        {"success": true, "data": {"invoice_number": "INV-20250115-042", ...}, "message": "Invoice marked as paid"}
    """
    success: bool = True
    data: T
    message: str = "Operation successful"


class PaginationMeta(BaseModel):
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)


class PaginatedResponse(BaseModel, Generic[T]):
    """Envelope for listings that can grow without bound, such as invoices."""
    success: bool = True
    data: List[T]
    meta: PaginationMeta
    message: str = "Operation successful"

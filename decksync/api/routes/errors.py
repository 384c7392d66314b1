"""Error models and helpers shared by the API routes."""

from fastapi import HTTPException, status
from pydantic import BaseModel

from decksync.domain.errors import StorageUnavailable


class ErrorDetail(BaseModel):
    """Error detail structure."""

    code: str
    message: str
    details: dict | None = None


class ErrorResponse(BaseModel):
    """Error response wrapper."""

    error: ErrorDetail


def api_error(status_code: int, code: str, message: str, details: dict | None = None) -> HTTPException:
    """Build an HTTPException with the {"error": {...}} body every route returns."""
    error: dict = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return HTTPException(status_code=status_code, detail={"error": error})


def storage_unavailable(e: StorageUnavailable) -> HTTPException:
    return api_error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "STORAGE_UNAVAILABLE",
        f"Local storage unavailable: {e.reason}",
    )

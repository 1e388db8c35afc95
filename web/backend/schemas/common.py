"""Common schemas for the web backend API."""
from typing import Optional
from pydantic import BaseModel


class SuccessResponse(BaseModel):
    """Success response."""

    status: str = "ok"
    message: Optional[str] = None

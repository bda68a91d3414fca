"""
Response envelope shared by every endpoint.

    {"success": true, "data": <payload>, "message": "..."}
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: str = ""


def ok(data=None, message: str = "") -> dict:
    return {"success": True, "data": data, "message": message}

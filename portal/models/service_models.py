"""
Service Layer Data Transfer Objects.

Pydantic models for validated output at service boundaries.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel

__all__ = ["ServiceResult"]


class ServiceResult(BaseModel):
    """Uniform result of an administrative service call.

    ``status_code`` follows HTTP semantics (403 policy denial, 404 not
    found, 400 invalid input, 500/503 backend failure) so callers can map
    it onto whatever surface they expose.
    """

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    status_code: int = 200

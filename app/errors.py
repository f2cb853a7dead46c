"""
Scheduling error taxonomy.

Services raise these; the handler registered in main.py turns them into JSON
responses. None of them are retried automatically.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    """Base class for errors surfaced to the API caller"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message}


class ValidationError(SchedulingError):
    """Malformed input, rejected before any read or write"""

    status_code = 400


class NotFoundError(SchedulingError):
    """Missing, or owned by someone else (callers cannot tell the difference)"""

    status_code = 404


class ConflictError(SchedulingError):
    """One or more requested slots overlap an existing session"""

    status_code = 409

    def __init__(self, message: str, conflicts: Optional[list[datetime]] = None):
        super().__init__(message)
        self.conflicts = conflicts or []

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "conflicts": [c.isoformat() for c in self.conflicts]}


class CapacityError(SchedulingError):
    """Package slot limit would be exceeded"""

    status_code = 400

    def __init__(self, message: str, remaining_slots: int):
        super().__init__(message)
        self.remaining_slots = remaining_slots

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "remainingSlots": self.remaining_slots}


class InvariantViolationError(SchedulingError):
    """Policy violation such as deleting a completed session"""

    status_code = 400


class StorageError(SchedulingError):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} - {type(exc).__name__}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} - {type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

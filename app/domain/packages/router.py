"""Package router - FastAPI endpoints for session packages"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import PackageStatus, Professional, SessionPackage
from ...rate_limiter import delete_rate_limiter
from ..scheduling.schemas import DeleteResponse, SessionResponse
from .schemas import (
    AddSessionsRequest,
    AddSessionsResponse,
    PackageCreate,
    PackageResponse,
    PackageStats,
    PackageUpdate,
)
from .service import PackageService
from .stats import compute_package_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/packages", tags=["Packages"])


def get_package_service(request: Request, db: Session = Depends(get_db)) -> PackageService:
    """Dependency injection for PackageService"""
    return PackageService(db, request)


def _package_response(package: SessionPackage, include_billing: bool = False) -> PackageResponse:
    return PackageResponse(
        id=package.id,
        patient_id=package.patient_id,
        pricing_plan_id=package.pricing_plan_id,
        name=package.name,
        total_sessions=package.total_sessions,
        price_per_session=package.price_per_session,
        status=package.status,
        notes=package.notes,
        created_at=package.created_at,
        sessions=[SessionResponse.model_validate(s) for s in package.sessions],
        stats=PackageStats(**compute_package_stats(package, include_billing)),
    )


@router.post("", response_model=PackageResponse, status_code=status.HTTP_201_CREATED)
async def create_package(
    data: PackageCreate,
    current_user: Professional = Depends(get_current_user),
    service: PackageService = Depends(get_package_service),
):
    """Sell a package and book its sessions"""
    package = service.create_package(current_user.id, data)
    return _package_response(package)


@router.get("", response_model=list[PackageResponse])
async def list_packages(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    package_status: Optional[PackageStatus] = Query(None, alias="status"),
    current_user: Professional = Depends(get_current_user),
    service: PackageService = Depends(get_package_service),
):
    """List packages for the current professional"""
    packages = service.list_packages(current_user.id, patient_id, package_status)
    return [_package_response(p) for p in packages]


@router.get("/{package_id}", response_model=PackageResponse)
async def get_package(
    package_id: int,
    current_user: Professional = Depends(get_current_user),
    service: PackageService = Depends(get_package_service),
):
    """Get a package with sessions, consumption and billing totals"""
    package = service.get_package(current_user.id, package_id)
    return _package_response(package, include_billing=True)


@router.get("/{package_id}/stats", response_model=PackageStats)
async def get_package_stats(
    package_id: int,
    current_user: Professional = Depends(get_current_user),
    service: PackageService = Depends(get_package_service),
):
    """Consumption and billing counters of a package"""
    return service.package_stats(current_user.id, package_id)


@router.post("/{package_id}/sessions", response_model=AddSessionsResponse)
async def add_package_sessions(
    package_id: int,
    data: AddSessionsRequest,
    current_user: Professional = Depends(get_current_user),
    service: PackageService = Depends(get_package_service),
):
    """Book more sessions into the free slots of a package"""
    package, created = service.add_package_sessions(current_user.id, package_id, data)
    return AddSessionsResponse(
        createdCount=len(created),
        sessions=[SessionResponse.model_validate(s) for s in created],
        packageStatus=package.status,
    )


@router.put("/{package_id}", response_model=PackageResponse)
async def update_package(
    package_id: int,
    data: PackageUpdate,
    current_user: Professional = Depends(get_current_user),
    service: PackageService = Depends(get_package_service),
):
    """Rename, annotate or cancel a package"""
    package = service.update_package(current_user.id, package_id, data)
    return _package_response(package)


@router.delete("/{package_id}", response_model=DeleteResponse)
async def delete_package(
    package_id: int,
    current_user: Professional = Depends(get_current_user),
    service: PackageService = Depends(get_package_service),
    _: None = Depends(delete_rate_limiter),
):
    """Delete a package with its sessions and payments"""
    deleted_count = service.delete_package(current_user.id, package_id)
    return DeleteResponse(
        deletedCount=deleted_count,
        message=f"Package deleted with {deleted_count} session(s)",
    )


__all__ = [
    "router",
    "create_package",
    "list_packages",
    "get_package",
    "get_package_stats",
    "add_package_sessions",
    "update_package",
    "delete_package",
]

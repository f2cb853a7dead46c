"""Payment router - FastAPI endpoints for session payments"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import PaymentStatus, Professional
from .schemas import PaymentResponse, PaymentSummary, PaymentUpdate
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def get_payment_service(request: Request, db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db, request)


@router.get("", response_model=list[PaymentResponse])
async def list_payments(
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    patient_id: Optional[int] = Query(None, alias="patientId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: Professional = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """List payments, newest session first"""
    return service.list_payments(current_user.id, payment_status, patient_id, start_date, end_date)


@router.get("/summary", response_model=PaymentSummary)
async def get_payment_summary(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: Professional = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Paid and pending totals"""
    return service.summary(current_user.id, patient_id, start_date, end_date)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    current_user: Professional = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.get_payment(current_user.id, payment_id)


@router.put("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: int,
    data: PaymentUpdate,
    current_user: Professional = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Mark paid, attach a receipt or correct the amount"""
    return service.update_payment(current_user.id, payment_id, data)


__all__ = [
    "router",
    "list_payments",
    "get_payment_summary",
    "get_payment",
    "update_payment",
]

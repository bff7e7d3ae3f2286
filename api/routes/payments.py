"""
Payments API routes.

Creates checkout preferences and exposes the gateway's view of a payment via
the application service. Keep this thin: no SDK details here.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from api.dependencies import get_payment_service
from application.dtos.payments import CreatePreference
from application.services.payment_service import PaymentService
from core.response import success_response


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/preferences", summary="Create checkout preference", status_code=status.HTTP_201_CREATED)
async def create_preference(payload: CreatePreference, service: PaymentService = Depends(get_payment_service)):
    result = await service.create_preference(payload)
    return success_response(data=result.model_dump(mode="json"), message="Preference created")


@router.get("/{payment_id}", summary="Fetch payment detail from the gateway")
async def get_payment(payment_id: str, service: PaymentService = Depends(get_payment_service)):
    detail = await service.fetch_payment(payment_id)
    return success_response(data=detail.model_dump(mode="json"), message="Payment detail")

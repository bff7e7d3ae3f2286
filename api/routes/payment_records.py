"""
Administrative payment record endpoints.

Records are returned in their stored (camelCase) shape.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_admin_service
from application.services.payment_admin_service import PaymentAdminService
from core.response import success_response


router = APIRouter(prefix="/payment-records", tags=["Payment Records"])


@router.get("", summary="List payment records")
async def list_records(
    status: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    service: PaymentAdminService = Depends(get_admin_service),
):
    records = await service.list_records(status=status, limit=limit)
    return success_response(
        data={"items": [r.to_storage() for r in records], "total": len(records)},
        message="Payment records",
    )


@router.get("/stats", summary="Aggregate statistics")
async def record_stats(service: PaymentAdminService = Depends(get_admin_service)):
    stats = await service.stats()
    return success_response(
        data={
            "count": stats["count"],
            "countByStatus": stats["count_by_status"],
            "countByPaymentMethod": stats["count_by_payment_method"],
            "totalAmount": str(stats["total_amount"]),
            "generatedAt": stats["generated_at"].isoformat(),
        },
        message="Payment statistics",
    )


@router.get("/invalid", summary="Unreadable record slots")
async def invalid_records(service: PaymentAdminService = Depends(get_admin_service)):
    items = await service.invalid_records()
    return success_response(data={"items": items, "total": len(items)}, message="Invalid payment records")


@router.get("/{external_reference}", summary="Get payment record")
async def get_record(external_reference: str, service: PaymentAdminService = Depends(get_admin_service)):
    record = await service.get_record(external_reference)
    return success_response(data=record.to_storage(), message="Payment record")


@router.delete("/{external_reference}", summary="Delete payment record")
async def delete_record(external_reference: str, service: PaymentAdminService = Depends(get_admin_service)):
    await service.delete_record(external_reference)
    return success_response(data={"externalReference": external_reference}, message="Payment record deleted")


@router.delete("", summary="Delete all payment records")
async def clear_records(service: PaymentAdminService = Depends(get_admin_service)):
    removed = await service.clear_records()
    return success_response(data={"removed": removed}, message="Payment records cleared")

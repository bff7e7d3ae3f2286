"""
Reconciliation monitor endpoints: status and operator reprocessing.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_watcher
from application.services.reconciliation import ReconciliationWatcher
from core.response import success_response
from domain.common.exceptions import BusinessException


router = APIRouter(prefix="/payment-monitor", tags=["Payment Monitor"])


@router.get("/status", summary="Reconciliation watcher status")
async def monitor_status(watcher: ReconciliationWatcher = Depends(get_watcher)):
    return success_response(data=watcher.status(), message="Monitor status")


@router.post("/reprocess/{external_reference}", summary="Reprocess one approved payment")
async def reprocess(
    external_reference: str,
    force: bool = Query(default=False),
    watcher: ReconciliationWatcher = Depends(get_watcher),
):
    result = await watcher.reprocess(external_reference, force=force)
    if not result.success and result.error_code is not None:
        raise BusinessException(
            code=result.error_code,
            message=result.message,
            error_type="ReprocessFailed",
            details=result.model_dump(mode="json"),
        )
    return success_response(data=result.model_dump(mode="json"), message=result.message)


@router.post("/reprocess-all", summary="Reprocess every approved payment")
async def reprocess_all(
    force: bool = Query(default=False),
    watcher: ReconciliationWatcher = Depends(get_watcher),
):
    summary = await watcher.reprocess_all(force=force)
    return success_response(data=summary.model_dump(mode="json"), message="Reprocess finished")

"""
Tâches planifiées appelées par un cron externe (Authorization: Bearer <CRON_SECRET>).
"""
from fastapi import APIRouter, Depends

from clubhouse.children import service as children_service
from clubhouse.payments import service as payments_service
from clubhouse.utils.security import require_cron_secret

router = APIRouter(prefix="/api/v1/cron", tags=["Cron"], dependencies=[Depends(require_cron_secret)])

@router.post("/expire-bookings")
def expire_bookings():
    return {"ok": True, **payments_service.sweep_pending_bookings()}

@router.post("/incomplete-reminders")
def incomplete_reminders():
    return {"ok": True, **children_service.remind_incomplete_bookings()}

from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends

from app.api.deps import AuthenticatedUser, get_theater_service, require_roles
from app.schemas import ApiResponse, CancelBookingRequest, LockResult, LockSlotRequest, TheaterBookingRead
from app.services.theater import TheaterLockService

router = APIRouter(prefix="/theaters", tags=["theaters"])

SCHEDULER_ROLES = ("theater_tech", "doctor", "frontdesk", "admin")


@router.post("/bookings/lock", response_model=ApiResponse[LockResult], status_code=201)
def lock_slot(
    payload: LockSlotRequest,
    current: AuthenticatedUser = Depends(require_roles(*SCHEDULER_ROLES)),
    service: TheaterLockService = Depends(get_theater_service),
) -> ApiResponse[LockResult]:
    result = service.lock_slot(
        payload.case_id,
        payload.theater_id,
        payload.start_time,
        payload.end_time,
        current.user.id,
    )
    return ApiResponse(data=result)


@router.post("/bookings/{booking_id}/confirm", response_model=ApiResponse[TheaterBookingRead])
def confirm_booking(
    booking_id: int,
    current: AuthenticatedUser = Depends(require_roles(*SCHEDULER_ROLES)),
    service: TheaterLockService = Depends(get_theater_service),
) -> ApiResponse[TheaterBookingRead]:
    booking = service.confirm_booking(booking_id, current.user.id, is_admin=current.role_code == "admin")
    return ApiResponse(data=booking)


@router.post("/bookings/{booking_id}/cancel", response_model=ApiResponse[TheaterBookingRead])
def cancel_booking(
    booking_id: int,
    payload: CancelBookingRequest | None = None,
    current: AuthenticatedUser = Depends(require_roles(*SCHEDULER_ROLES)),
    service: TheaterLockService = Depends(get_theater_service),
) -> ApiResponse[TheaterBookingRead]:
    reason = payload.reason if payload else None
    return ApiResponse(data=service.cancel_booking(booking_id, current.user.id, reason))


@router.get("/{theater_id}/bookings", response_model=ApiResponse[List[TheaterBookingRead]])
def list_theater_bookings(
    theater_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    _: AuthenticatedUser = Depends(require_roles(*SCHEDULER_ROLES, "nurse")),
    service: TheaterLockService = Depends(get_theater_service),
) -> ApiResponse[List[TheaterBookingRead]]:
    return ApiResponse(data=service.list_bookings(theater_id, start=start, end=end))

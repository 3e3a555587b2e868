"""Two-phase theater booking: lock a slot provisionally, then confirm it.

A lock is a PROVISIONAL booking with a server computed ``lock_expires_at``.
It can be confirmed while ``now < lock_expires_at``; afterwards it is treated
as EXPIRED whether or not the sweeper has already rewritten the row.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from app.core.config import Settings, settings as default_settings
from app.domain import (
    Conflict,
    Expired,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    SurgicalCaseStatus,
    TheaterBookingStatus,
    ValidationFailure,
    ensure_max_length,
)
from app.domain.value_objects import MAX_SHORT_TEXT_LENGTH
from app.models import SurgicalCase, Theater, TheaterBooking
from app.schemas.theater import LockResult, TheaterBookingRead
from app.services.appointment_workflow import record_best_effort
from app.services.clock import as_utc
from app.services.ports import AuditEntry, AuditService, TimeService

logger = structlog.get_logger(__name__)

LIVE_STATUSES = (TheaterBookingStatus.PROVISIONAL.value, TheaterBookingStatus.CONFIRMED.value)
UNSCHEDULABLE_CASE_STATUSES = (SurgicalCaseStatus.COMPLETED.value, SurgicalCaseStatus.CANCELLED.value)


def effective_status(booking: TheaterBooking, now: datetime) -> TheaterBookingStatus:
    status = TheaterBookingStatus(booking.status)
    if status == TheaterBookingStatus.PROVISIONAL and _lock_expired(booking, now):
        return TheaterBookingStatus.EXPIRED
    return status


def _lock_expired(booking: TheaterBooking, now: datetime) -> bool:
    expires_at = as_utc(booking.lock_expires_at)
    return expires_at is None or now >= expires_at


def to_read(booking: TheaterBooking, now: datetime) -> TheaterBookingRead:
    return TheaterBookingRead(
        id=booking.id,
        theater_id=booking.theater_id,
        case_id=booking.case_id,
        start_time=as_utc(booking.start_time),
        end_time=as_utc(booking.end_time),
        status=effective_status(booking, now),
        locked_by=booking.locked_by,
        lock_expires_at=as_utc(booking.lock_expires_at),
        confirmed_by=booking.confirmed_by,
        confirmed_at=as_utc(booking.confirmed_at),
        cancelled_reason=booking.cancelled_reason,
    )


class TheaterLockService:
    def __init__(
        self,
        session: Session,
        clock: TimeService,
        audit: AuditService,
        settings: Optional[Settings] = None,
    ) -> None:
        if session is None or clock is None or audit is None:
            raise ValueError("session, clock and audit are required")
        self.session = session
        self.clock = clock
        self.audit = audit
        self.settings = settings or default_settings

    @property
    def lock_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.theater_lock_ttl_seconds)

    def lock_slot(
        self,
        case_id: int,
        theater_id: int,
        start_time: datetime,
        end_time: datetime,
        user_id: int,
    ) -> LockResult:
        start, end = as_utc(start_time), as_utc(end_time)
        if start >= end:
            raise ValidationFailure(
                "Start time must be before end time",
                field="start_time",
                context={"start_time": start.isoformat(), "end_time": end.isoformat()},
            )

        # Serialises concurrent lock attempts on the same theater where the backend supports it.
        theater = self.session.exec(
            select(Theater).where(Theater.id == theater_id).with_for_update()
        ).first()
        if theater is None or not theater.is_active:
            raise NotFound("Theater", theater_id)
        case = self.session.get(SurgicalCase, case_id)
        if case is None:
            raise NotFound("SurgicalCase", case_id)
        if case.status in UNSCHEDULABLE_CASE_STATUSES:
            raise InvalidStateTransition(
                f"Cannot book a theater for a {case.status.lower()} case",
                current_state=case.status,
                attempted_action="lock_slot",
                context={"case_id": case_id},
            )

        now = self.clock.now()
        self._expire_stale_locks(theater_id=theater_id, now=now)
        self._check_quota(user_id=user_id, case_id=case_id, now=now)

        held = self._live_case_lock(case_id=case_id, now=now)
        if held is not None and held.locked_by != user_id:
            self.session.rollback()
            raise Conflict(
                "Case is currently locked by another user",
                {"case_id": case_id, "booking_id": held.id},
            )
        if (
            held is not None
            and held.theater_id == theater_id
            and as_utc(held.start_time) == start
            and as_utc(held.end_time) == end
        ):
            self.session.commit()
            return LockResult(booking_id=held.id, lock_expires_at=as_utc(held.lock_expires_at))

        conflict = self._find_overlap(theater_id=theater_id, start=start, end=end, now=now, replacing=held)
        if conflict is not None:
            self.session.rollback()
            raise Conflict(
                "Theater is already booked or locked for this time slot",
                {"theater_id": theater_id, "conflicting_booking_id": conflict.id},
            )

        confirmed = self.session.exec(
            select(TheaterBooking).where(
                TheaterBooking.case_id == case_id,
                TheaterBooking.status == TheaterBookingStatus.CONFIRMED.value,
            )
        ).first()
        if confirmed is not None:
            self.session.rollback()
            raise Conflict(
                "Case already has a confirmed theater booking; cancel it before booking a new slot",
                {"case_id": case_id, "booking_id": confirmed.id},
            )

        for previous in self.session.exec(select(TheaterBooking).where(TheaterBooking.case_id == case_id)).all():
            self.session.delete(previous)
        self.session.flush()

        booking = TheaterBooking(
            theater_id=theater_id,
            case_id=case_id,
            start_time=start,
            end_time=end,
            status=TheaterBookingStatus.PROVISIONAL.value,
            locked_by=user_id,
            locked_at=now,
            lock_expires_at=now + self.lock_ttl,
        )
        self.session.add(booking)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict(
                "Theater is already booked or locked for this time slot",
                {"theater_id": theater_id},
            ) from exc
        self.session.refresh(booking)

        lock_expires_at = as_utc(booking.lock_expires_at)
        logger.info(
            "theater_slot_locked",
            booking_id=booking.id,
            theater_id=theater_id,
            case_id=case_id,
            lock_expires_at=lock_expires_at.isoformat(),
        )
        self._audit(
            user_id=user_id,
            booking=booking,
            action="LOCK",
            details=f"Provisional lock on theater {theater.name} for case {case_id}",
            metadata={
                "theater_id": theater_id,
                "case_id": case_id,
                "start_time": start.isoformat(),
                "end_time": end.isoformat(),
                "lock_expires_at": lock_expires_at.isoformat(),
            },
        )
        return LockResult(booking_id=booking.id, lock_expires_at=lock_expires_at)

    def confirm_booking(self, booking_id: int, user_id: int, *, is_admin: bool = False) -> TheaterBookingRead:
        booking = self._require_booking(booking_id)
        now = self.clock.now()

        if booking.status == TheaterBookingStatus.CONFIRMED.value:
            return to_read(booking, now)
        if booking.status == TheaterBookingStatus.EXPIRED.value:
            raise Expired(
                "Booking lock has expired. Please try again.",
                expired_at=as_utc(booking.lock_expires_at) or now,
                context={"booking_id": booking_id},
            )
        if booking.status != TheaterBookingStatus.PROVISIONAL.value:
            raise InvalidStateTransition(
                "Booking is not in provisional state",
                current_state=booking.status,
                attempted_action="confirm_booking",
                context={"booking_id": booking_id},
            )
        if _lock_expired(booking, now):
            expired_at = as_utc(booking.lock_expires_at) or now
            booking.status = TheaterBookingStatus.EXPIRED.value
            self.session.add(booking)
            self.session.commit()
            logger.info("theater_lock_expired", booking_id=booking_id, lock_expires_at=expired_at.isoformat())
            raise Expired(
                "Booking lock has expired. Please try again.",
                expired_at=expired_at,
                context={"booking_id": booking_id},
            )

        override = booking.locked_by != user_id
        if override and not is_admin:
            raise PermissionDenied(
                "Booking is locked by another user",
                {"booking_id": booking_id, "locked_by": booking.locked_by},
            )

        booking.status = TheaterBookingStatus.CONFIRMED.value
        booking.confirmed_by = user_id
        booking.confirmed_at = now
        self.session.add(booking)
        case = self.session.get(SurgicalCase, booking.case_id)
        if case is not None:
            case.status = SurgicalCaseStatus.SCHEDULED.value
            self.session.add(case)
        self.session.commit()
        self.session.refresh(booking)

        if override:
            logger.warning("theater_lock_overridden", booking_id=booking_id, admin_id=user_id, locked_by=booking.locked_by)
        logger.info("theater_booking_confirmed", booking_id=booking_id, case_id=booking.case_id)
        self._audit(
            user_id=user_id,
            booking=booking,
            action="CONFIRM",
            details=f"Theater booking {booking_id} confirmed",
            metadata={
                "case_id": booking.case_id,
                "previous_status": TheaterBookingStatus.PROVISIONAL.value,
                "new_status": TheaterBookingStatus.CONFIRMED.value,
                "admin_override": override,
            },
        )
        return to_read(booking, now)

    def cancel_booking(self, booking_id: int, user_id: int, reason: Optional[str] = None) -> TheaterBookingRead:
        cleaned_reason = ensure_max_length((reason or "").strip() or None, MAX_SHORT_TEXT_LENGTH, "reason")
        booking = self._require_booking(booking_id)
        now = self.clock.now()
        if booking.status == TheaterBookingStatus.CANCELLED.value:
            return to_read(booking, now)

        previous_status = effective_status(booking, now)
        booking.status = TheaterBookingStatus.CANCELLED.value
        booking.cancelled_reason = cleaned_reason
        self.session.add(booking)
        case = self.session.get(SurgicalCase, booking.case_id)
        if case is not None and case.status not in UNSCHEDULABLE_CASE_STATUSES:
            case.status = SurgicalCaseStatus.READY_FOR_SCHEDULING.value
            self.session.add(case)
        self.session.commit()
        self.session.refresh(booking)

        logger.info("theater_booking_cancelled", booking_id=booking_id, case_id=booking.case_id)
        details = f"Theater booking {booking_id} cancelled"
        if booking.cancelled_reason:
            details += f". Reason: {booking.cancelled_reason}"
        self._audit(
            user_id=user_id,
            booking=booking,
            action="CANCEL",
            details=details,
            metadata={
                "case_id": booking.case_id,
                "previous_status": previous_status.value,
                "new_status": TheaterBookingStatus.CANCELLED.value,
            },
        )
        return to_read(booking, now)

    def release_expired_locks(self) -> int:
        now = self.clock.now()
        released = self._expire_stale_locks(now=now)
        self.session.commit()
        if released:
            logger.info("theater_locks_released", count=released)
            record_best_effort(
                self.audit,
                AuditEntry(
                    user_id=None,
                    record_id=None,
                    action="EXPIRE",
                    model="TheaterBooking",
                    details=f"Released {released} expired theater lock(s)",
                    metadata={"released_count": released, "auto": True},
                    context={"source": "background"},
                ),
            )
        return released

    def list_bookings(
        self,
        theater_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TheaterBookingRead]:
        if self.session.get(Theater, theater_id) is None:
            raise NotFound("Theater", theater_id)
        statement = select(TheaterBooking).where(
            TheaterBooking.theater_id == theater_id,
            TheaterBooking.status != TheaterBookingStatus.CANCELLED.value,
        )
        if start is not None:
            statement = statement.where(TheaterBooking.end_time > as_utc(start))
        if end is not None:
            statement = statement.where(TheaterBooking.start_time < as_utc(end))
        now = self.clock.now()
        rows = self.session.exec(statement.order_by(TheaterBooking.start_time)).all()
        return [to_read(row, now) for row in rows]

    def active_lock_count(self, user_id: int) -> int:
        return self.session.exec(
            select(func.count())
            .select_from(TheaterBooking)
            .where(
                TheaterBooking.locked_by == user_id,
                TheaterBooking.status == TheaterBookingStatus.PROVISIONAL.value,
                TheaterBooking.lock_expires_at > self.clock.now(),
            )
        ).one()

    def _require_booking(self, booking_id: int) -> TheaterBooking:
        booking = self.session.get(TheaterBooking, booking_id)
        if booking is None:
            raise NotFound("TheaterBooking", booking_id)
        return booking

    def _expire_stale_locks(self, *, now: datetime, theater_id: Optional[int] = None) -> int:
        statement = select(TheaterBooking).where(
            TheaterBooking.status == TheaterBookingStatus.PROVISIONAL.value,
            TheaterBooking.lock_expires_at <= now,
        )
        if theater_id is not None:
            statement = statement.where(TheaterBooking.theater_id == theater_id)
        stale = self.session.exec(statement).all()
        for booking in stale:
            booking.status = TheaterBookingStatus.EXPIRED.value
            self.session.add(booking)
        if stale:
            self.session.flush()
        return len(stale)

    def _check_quota(self, *, user_id: int, case_id: int, now: datetime) -> None:
        if self.active_lock_count(user_id) < self.settings.theater_max_active_locks:
            return
        existing = self.session.exec(
            select(TheaterBooking).where(
                TheaterBooking.case_id == case_id,
                TheaterBooking.locked_by == user_id,
                TheaterBooking.status == TheaterBookingStatus.PROVISIONAL.value,
                TheaterBooking.lock_expires_at > now,
            )
        ).first()
        if existing is None:
            self.session.rollback()
            raise Conflict(
                f"You have reached the maximum number of active locks ({self.settings.theater_max_active_locks}). "
                "Please confirm or release existing locks.",
                {"user_id": user_id},
            )

    def _live_case_lock(self, *, case_id: int, now: datetime) -> Optional[TheaterBooking]:
        return self.session.exec(
            select(TheaterBooking).where(
                TheaterBooking.case_id == case_id,
                TheaterBooking.status == TheaterBookingStatus.PROVISIONAL.value,
                TheaterBooking.lock_expires_at > now,
            )
        ).first()

    def _find_overlap(
        self,
        *,
        theater_id: int,
        start: datetime,
        end: datetime,
        now: datetime,
        replacing: Optional[TheaterBooking] = None,
    ) -> Optional[TheaterBooking]:
        candidates = self.session.exec(
            select(TheaterBooking)
            .where(
                TheaterBooking.theater_id == theater_id,
                TheaterBooking.status.in_(LIVE_STATUSES),
                TheaterBooking.start_time < end,
                TheaterBooking.end_time > start,
            )
            .order_by(TheaterBooking.id)
        ).all()
        for booking in candidates:
            if replacing is not None and booking.id == replacing.id:
                continue
            if effective_status(booking, now) in (TheaterBookingStatus.PROVISIONAL, TheaterBookingStatus.CONFIRMED):
                return booking
        return None

    def _audit(
        self,
        *,
        user_id: int,
        booking: TheaterBooking,
        action: str,
        details: str,
        metadata: dict,
    ) -> None:
        record_best_effort(
            self.audit,
            AuditEntry(
                user_id=user_id,
                record_id=str(booking.id),
                action=action,
                model="TheaterBooking",
                details=details,
                metadata=metadata,
            ),
        )

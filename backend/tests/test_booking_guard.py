"""
Tests for conflict-checked booking writes.
"""

import asyncio
import gc
from datetime import date, datetime, timezone

import pytest

from app.services.scheduling.base import (
    AppointmentRecord,
    AppointmentStatus,
    InvalidTransitionError,
    ServiceDefinition,
)
from app.services.scheduling.booking_guard import BookingConflictGuard, resolve_duration
from app.services.scheduling.cache import BusinessDataCache, CacheEntity, CachedBusinessData

from conftest import NOW, TZ, local


@pytest.fixture
def data(seeded, settings):
    return CachedBusinessData(seeded.store, BusinessDataCache(), settings)


@pytest.fixture
def guard(data):
    return BookingConflictGuard(data)


class TestResolveDuration:
    def test_service_duration_wins(self):
        service = ServiceDefinition(id="s", business_id="biz", name="Color", duration_minutes=90)
        assert resolve_duration(service, 30) == 90

    def test_service_without_duration_uses_thirty(self):
        assert resolve_duration(ServiceDefinition(id="s", business_id="biz", name="Trim")) == 30

    def test_estimate_is_capped_at_eight_hours(self):
        assert resolve_duration(None, 45) == 45
        assert resolve_duration(None, 1000) == 480

    def test_default_is_one_hour(self):
        assert resolve_duration() == 60
        assert resolve_duration(None, 0) == 60


class TestCommitBooking:
    """Tests for BookingConflictGuard.commit_booking."""

    async def test_commit_writes_appointment(self, guard, seeded):
        commit = await guard.commit_booking(
            seeded.business_id, "tomorrow", "10am", TZ,
            service=seeded.haircut, customer_name="Jane", customer_phone="+15550001", now=NOW,
        )

        assert commit.committed
        assert commit.start_at == local(2026, 10, 23, 10)
        assert commit.end_at == local(2026, 10, 23, 11)
        stored = seeded.store.appointments[commit.appointment_id]
        assert stored.customer_name == "Jane"
        assert stored.service_id == seeded.haircut.id
        assert stored.status == AppointmentStatus.SCHEDULED

    async def test_overlapping_booking_is_rejected(self, guard, seeded):
        await guard.commit_booking(seeded.business_id, "next friday", "2pm", TZ, now=NOW)
        second = await guard.commit_booking(seeded.business_id, "next friday", "2:30pm", TZ, now=NOW)

        assert not second.committed
        assert second.conflict_at == "2:00 PM"
        assert second.conflicting_appointment_id is not None
        assert len(seeded.store.appointments) == 1

    async def test_adjacent_booking_is_allowed(self, guard, seeded):
        await guard.commit_booking(seeded.business_id, "tomorrow", "10am", TZ, now=NOW)
        commit = await guard.commit_booking(seeded.business_id, "tomorrow", "11am", TZ, now=NOW)
        assert commit.committed

    async def test_cancelled_booking_does_not_block(self, guard, seeded):
        seeded.store.add_appointment(AppointmentRecord(
            id=None, business_id=seeded.business_id,
            start_at=local(2026, 10, 23, 10), end_at=local(2026, 10, 23, 11),
            status="cancelled",
        ))
        commit = await guard.commit_booking(seeded.business_id, "tomorrow", "10am", TZ, now=NOW)
        assert commit.committed

    async def test_staff_bookings_are_independent(self, guard, seeded):
        await guard.commit_booking(seeded.business_id, "tomorrow", "10am", TZ, staff_id=seeded.sarah.id, now=NOW)
        commit = await guard.commit_booking(
            seeded.business_id, "tomorrow", "10am", TZ, staff_id=seeded.mike.id, now=NOW
        )
        assert commit.committed

    async def test_past_instant_is_not_written(self, guard, seeded):
        commit = await guard.commit_booking(seeded.business_id, "today", "7am", TZ, now=NOW)
        assert not commit.committed
        assert commit.in_past
        assert seeded.store.appointments == {}

    async def test_conflict_check_bypasses_cache(self, guard, data, seeded):
        """A booking written behind the cache's back still blocks the slot."""
        await data.get_appointments(seeded.business_id, TZ, date(2026, 10, 23), 1)
        seeded.store.add_appointment(AppointmentRecord(
            id=None, business_id=seeded.business_id,
            start_at=local(2026, 10, 23, 10), end_at=local(2026, 10, 23, 11),
        ))
        commit = await guard.commit_booking(seeded.business_id, "tomorrow", "10:30am", TZ, now=NOW)
        assert not commit.committed

    async def test_commit_invalidates_appointments_cache(self, guard, data, seeded):
        await data.get_appointments(seeded.business_id, TZ, date(2026, 10, 23), 1)
        await data.get_services(seeded.business_id)

        await guard.commit_booking(seeded.business_id, "tomorrow", "10am", TZ, now=NOW)

        keys = data.cache.stats()["keys"]
        assert not any(k.startswith(CacheEntity.APPOINTMENTS.value) for k in keys)
        assert any(k.startswith(CacheEntity.SERVICES.value) for k in keys)

    async def test_concurrent_commits_for_same_slot(self, guard, seeded):
        """Only one of several simultaneous requests for the same slot is written."""
        results = await asyncio.gather(*[
            guard.commit_booking(seeded.business_id, "tomorrow", "2pm", TZ, now=NOW)
            for _ in range(5)
        ])

        assert sum(1 for r in results if r.committed) == 1
        assert len(seeded.store.appointments) == 1

    async def test_idle_locks_are_released(self, guard, seeded):
        await guard.commit_booking(seeded.business_id, "tomorrow", "2pm", TZ, now=NOW)
        await guard.commit_booking(seeded.business_id, "tomorrow", "3pm", TZ, staff_id=seeded.sarah.id, now=NOW)
        gc.collect()

        assert len(guard._locks) == 0

    async def test_same_key_shares_a_lock_while_in_use(self, guard, seeded):
        first = guard._lock_for(seeded.business_id, None)
        assert guard._lock_for(seeded.business_id, None) is first
        assert guard._lock_for(seeded.business_id, seeded.sarah.id) is not first


class TestReschedule:
    async def _booked(self, guard, seeded, at="10am"):
        commit = await guard.commit_booking(
            seeded.business_id, "tomorrow", at, TZ, service=seeded.haircut, now=NOW
        )
        return commit.appointment

    async def test_move_keeps_duration_and_adds_note(self, guard, seeded):
        appointment = await self._booked(guard, seeded)
        moved = await guard.reschedule(appointment, "next friday", "3pm", TZ, reason="conflict", now=NOW)

        assert moved.committed
        assert moved.start_at == local(2026, 10, 30, 15)
        assert moved.end_at == local(2026, 10, 30, 16)
        assert "[Rescheduled from" in moved.appointment.notes
        assert "conflict" in moved.appointment.notes

    async def test_move_within_own_slot_does_not_self_conflict(self, guard, seeded):
        appointment = await self._booked(guard, seeded)
        moved = await guard.reschedule(appointment, "tomorrow", "10:30am", TZ, now=NOW)
        assert moved.committed

    async def test_move_onto_another_booking_conflicts(self, guard, seeded):
        appointment = await self._booked(guard, seeded)
        await self._booked(guard, seeded, at="2pm")

        moved = await guard.reschedule(appointment, "tomorrow", "2pm", TZ, now=NOW)

        assert not moved.committed
        assert moved.conflict_at == "2:00 PM"

    async def test_confirmed_goes_back_to_scheduled(self, guard, seeded):
        appointment = await self._booked(guard, seeded)
        confirmed = await guard.transition(appointment, AppointmentStatus.CONFIRMED)

        moved = await guard.reschedule(confirmed, "tomorrow", "3pm", TZ, now=NOW)

        assert moved.appointment.status == AppointmentStatus.SCHEDULED

    async def test_cancelled_cannot_be_moved(self, guard, seeded):
        appointment = await self._booked(guard, seeded)
        cancelled = await guard.transition(appointment, AppointmentStatus.CANCELLED)

        with pytest.raises(InvalidTransitionError):
            await guard.reschedule(cancelled, "tomorrow", "3pm", TZ, now=NOW)

    async def test_move_into_past_is_refused(self, guard, seeded):
        appointment = await self._booked(guard, seeded)
        moved = await guard.reschedule(
            appointment, "today", "7am", TZ, now=datetime(2026, 10, 22, 12, 0, tzinfo=timezone.utc)
        )
        assert moved.in_past


class TestTransition:
    async def test_cancelled_is_terminal(self, guard, seeded):
        commit = await guard.commit_booking(seeded.business_id, "tomorrow", "10am", TZ, now=NOW)
        cancelled = await guard.transition(commit.appointment, AppointmentStatus.CANCELLED, "[Cancelled]")

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert cancelled.notes == "[Cancelled]"
        with pytest.raises(InvalidTransitionError):
            await guard.transition(cancelled, AppointmentStatus.CONFIRMED)

    async def test_confirmed_cannot_be_confirmed_again(self, guard, seeded):
        commit = await guard.commit_booking(seeded.business_id, "tomorrow", "10am", TZ, now=NOW)
        confirmed = await guard.transition(commit.appointment, AppointmentStatus.CONFIRMED)

        with pytest.raises(InvalidTransitionError):
            await guard.transition(confirmed, AppointmentStatus.CONFIRMED)

"""
Tests for the AvailabilityService orchestration layer.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pendulum

from availabilities.config import AppConfig, ScheduleConfig
from availabilities.domain.exceptions import EventStoreError
from availabilities.services.availability_service import (
    APPOINTMENTS,
    NON_RECURRING_OPENINGS,
    RECURRING_OPENINGS,
    AvailabilityService,
    get_availabilities,
    normalize_start_date,
)


def _record(kind: str, start: str, end: str, recurring: Optional[bool] = None) -> Dict[str, Any]:
    return {"kind": kind, "starts_at": start, "ends_at": end, "weekly_recurring": recurring}


class StubEventStore:
    """Minimal stub matching EventStoreProtocol."""

    def __init__(
        self,
        openings: Optional[List[Dict[str, Any]]] = None,
        recurring: Optional[List[Dict[str, Any]]] = None,
        appointments: Optional[List[Dict[str, Any]]] = None,
        failing: tuple = (),
    ):
        self._openings = openings or []
        self._recurring = recurring or []
        self._appointments = appointments or []
        self._failing = failing
        self.calls: List[Dict[str, Any]] = []

    async def fetch_non_recurring_openings(self, start_iso, end_iso):
        self.calls.append({"category": "non_recurring_openings", "start": start_iso, "end": end_iso})
        self._maybe_fail("non_recurring_openings")
        return self._openings

    async def fetch_recurring_openings(self):
        self.calls.append({"category": RECURRING_OPENINGS})
        self._maybe_fail(RECURRING_OPENINGS)
        return self._recurring

    async def fetch_appointments(self, start_iso, end_iso):
        self.calls.append({"category": APPOINTMENTS, "start": start_iso, "end": end_iso})
        self._maybe_fail(APPOINTMENTS)
        return self._appointments

    def _maybe_fail(self, category: str) -> None:
        if category in self._failing:
            raise EventStoreError(f"{category} unavailable")


class BarrierEventStore(StubEventStore):
    """Stub whose fetches only complete once all three are in flight."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._started = 0
        self._all_started = asyncio.Event()

    async def _arrive(self):
        self._started += 1
        if self._started == 3:
            self._all_started.set()
        await asyncio.wait_for(self._all_started.wait(), timeout=1)

    async def fetch_non_recurring_openings(self, start_iso, end_iso):
        await self._arrive()
        return await super().fetch_non_recurring_openings(start_iso, end_iso)

    async def fetch_recurring_openings(self):
        await self._arrive()
        return await super().fetch_recurring_openings()

    async def fetch_appointments(self, start_iso, end_iso):
        await self._arrive()
        return await super().fetch_appointments(start_iso, end_iso)


def _compute(store, start_date: Any = None, config: Optional[AppConfig] = None):
    service = AvailabilityService(event_store=store, config=config)
    return asyncio.run(service.compute_availability(start_date))


class TestComputeAvailability:
    """Tests for the availability entry point."""

    def test_skeleton_without_events(self):
        """An empty store yields seven empty days starting at the requested date."""
        availability = _compute(StubEventStore(), "2020-01-01 00:00")

        assert list(availability) == [
            "2020-01-01",
            "2020-01-02",
            "2020-01-03",
            "2020-01-04",
            "2020-01-05",
            "2020-01-06",
            "2020-01-07",
        ]
        assert all(slots == [] for slots in availability.values())

    def test_store_receives_window_bounds(self):
        """Range queries get the window start and the start plus seven days."""
        store = StubEventStore()

        _compute(store, "2021-10-08 09:00")

        ranged = [call for call in store.calls if "start" in call]
        assert len(store.calls) == 3
        assert len(ranged) == 2
        for call in ranged:
            assert pendulum.parse(call["start"]) == pendulum.datetime(2021, 10, 8, 9, 0, tz="UTC")
            assert pendulum.parse(call["end"]) == pendulum.datetime(2021, 10, 15, 9, 0, tz="UTC")

    def test_fetches_run_concurrently(self):
        """All three categories are requested before any of them completes."""
        store = BarrierEventStore(
            openings=[_record("opening", "2020-01-01 09:00", "2020-01-01 10:00")],
            appointments=[_record("appointment", "2020-01-01 09:30", "2020-01-01 10:00")],
        )
        service = AvailabilityService(event_store=store)

        report = asyncio.run(service.compute_availability_report("2020-01-01 00:00"))

        assert report.diagnostics == []
        assert report.availability["2020-01-01"] == ["9:00"]

    def test_combines_all_categories(self):
        """One-off openings, recurring openings and appointments are merged."""
        store = StubEventStore(
            openings=[_record("opening", "2021-10-03 09:00", "2021-10-03 10:00")],
            recurring=[_record("opening", "2021-09-26 08:30", "2021-09-26 09:00", recurring=True)],
            appointments=[_record("appointment", "2021-10-03 09:30", "2021-10-03 10:00")],
        )

        availability = _compute(store, "2021-10-01 06:00")

        assert availability["2021-10-03"] == ["8:30", "9:00"]

    def test_failed_category_degrades_gracefully(self):
        """A failing fetch is reported and the other categories still count."""
        store = StubEventStore(
            openings=[_record("opening", "2020-01-01 09:00", "2020-01-01 10:00")],
            recurring=[_record("opening", "2020-01-02 09:00", "2020-01-02 09:30", recurring=True)],
            failing=(RECURRING_OPENINGS,),
        )
        service = AvailabilityService(event_store=store)

        report = asyncio.run(service.compute_availability_report("2020-01-01 00:00"))

        assert report.availability["2020-01-01"] == ["9:00", "9:30"]
        assert report.availability["2020-01-02"] == []
        assert report.degraded
        assert [result.category for result in report.diagnostics] == [RECURRING_OPENINGS]
        assert isinstance(report.diagnostics[0].error, EventStoreError)

    def test_failed_appointments_leave_openings_free(self):
        """Without appointments every opening slot is available."""
        store = StubEventStore(
            openings=[_record("opening", "2020-01-01 09:00", "2020-01-01 10:00")],
            appointments=[_record("appointment", "2020-01-01 09:00", "2020-01-01 10:00")],
            failing=(APPOINTMENTS,),
        )

        assert _compute(store, "2020-01-01 00:00")["2020-01-01"] == ["9:00", "9:30"]

    def test_total_failure_still_returns_seven_days(self):
        """Even when every fetch fails the result has seven empty days."""
        store = StubEventStore(failing=("non_recurring_openings", RECURRING_OPENINGS, APPOINTMENTS))

        availability = _compute(store, "2020-01-01 00:00")

        assert len(availability) == 7
        assert all(slots == [] for slots in availability.values())

    def test_invalid_records_are_skipped(self):
        """A malformed record does not prevent the others from counting."""
        store = StubEventStore(
            openings=[
                _record("opening", "garbage", "2020-01-01 10:00"),
                _record("opening", "2020-01-01 11:00", "2020-01-01 11:30"),
            ],
        )

        assert _compute(store, "2020-01-01 00:00")["2020-01-01"] == ["11:00"]

    def test_store_returning_none_degrades_its_category(self):
        """A fetch that returns None is reported like a failed fetch."""

        class NoneOpeningsStore(StubEventStore):
            async def fetch_non_recurring_openings(self, start_iso, end_iso):
                return None

        store = NoneOpeningsStore(
            recurring=[_record("opening", "2019-12-25 09:00", "2019-12-25 09:30", recurring=True)],
        )
        service = AvailabilityService(event_store=store)

        report = asyncio.run(service.compute_availability_report("2020-01-01 00:00"))

        assert len(report.availability) == 7
        assert report.availability["2020-01-01"] == ["9:00"]
        assert [result.category for result in report.diagnostics] == [NON_RECURRING_OPENINGS]
        assert isinstance(report.diagnostics[0].error, TypeError)

    def test_non_mapping_records_are_skipped(self):
        """A None entry among the records is skipped like any malformed record."""
        store = StubEventStore(
            openings=[None, _record("opening", "2020-01-01 11:00", "2020-01-01 11:30")],
        )
        service = AvailabilityService(event_store=store)

        report = asyncio.run(service.compute_availability_report("2020-01-01 00:00"))

        assert report.diagnostics == []
        assert report.availability["2020-01-01"] == ["11:00"]

    def test_repeated_calls_are_identical(self):
        """Computing twice with the same data gives the same result."""
        store = StubEventStore(
            openings=[_record("opening", "2020-01-01 09:00", "2020-01-01 12:00")],
            appointments=[_record("appointment", "2020-01-01 10:00", "2020-01-01 10:30")],
        )
        service = AvailabilityService(event_store=store)

        first = asyncio.run(service.compute_availability("2020-01-01 00:00"))
        second = asyncio.run(service.compute_availability("2020-01-01 00:00"))

        assert first == second
        assert first["2020-01-01"] == ["9:00", "9:30", "10:30", "11:00", "11:30"]

    def test_invalid_date_defaults_to_today(self):
        """An unparseable date still yields a full week starting today."""
        before = pendulum.now("UTC").to_date_string()
        availability = _compute(StubEventStore(), "not a date")
        after = pendulum.now("UTC").to_date_string()

        keys = list(availability)
        assert len(keys) == 7
        assert keys[0] in {before, after}

    def test_configured_slot_duration(self):
        """The slot duration comes from the configuration."""
        config = AppConfig(schedule=ScheduleConfig(slot_duration_minutes=60))
        store = StubEventStore(openings=[_record("opening", "2020-01-01 09:00", "2020-01-01 11:00")])

        availability = _compute(store, "2020-01-01 00:00", config=config)

        assert availability["2020-01-01"] == ["9:00", "10:00"]

    def test_get_availabilities(self):
        """The module level helper builds a service for the store."""
        store = StubEventStore(openings=[_record("opening", "2020-01-01 11:00", "2020-01-01 11:30")])

        availability = asyncio.run(get_availabilities("2020-01-01 00:00", store=store))

        assert availability["2020-01-01"] == ["11:00"]


class TestNormalizeStartDate:
    """Tests for start date normalization."""

    def test_none_uses_current_time(self):
        result = normalize_start_date(None)

        assert result.timezone_name == "UTC"
        assert abs((pendulum.now("UTC") - result).total_seconds()) < 60

    def test_unparseable_string_uses_current_time(self):
        result = normalize_start_date("32/13/2020")

        assert abs((pendulum.now("UTC") - result).total_seconds()) < 60

    def test_unsupported_type_uses_current_time(self):
        result = normalize_start_date(12345)

        assert abs((pendulum.now("UTC") - result).total_seconds()) < 60

    def test_date_string(self):
        assert normalize_start_date("2020-01-01") == pendulum.datetime(2020, 1, 1, tz="UTC")

    def test_naive_datetime_is_wall_clock(self):
        result = normalize_start_date(datetime(2020, 1, 1, 9, 0))

        assert result == pendulum.datetime(2020, 1, 1, 9, 0, tz="UTC")

    def test_offset_is_cancelled(self):
        """An aware value is expressed in the configured zone."""
        value = datetime(2020, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=2)))

        result = normalize_start_date(value)

        assert result.hour == 7
        assert result.timezone_name == "UTC"

    def test_plain_date(self):
        assert normalize_start_date(date(2020, 1, 8)) == pendulum.datetime(2020, 1, 8, tz="UTC")

    def test_configured_timezone(self):
        result = normalize_start_date("2020-01-01 09:00", timezone="Europe/Berlin")

        assert result.hour == 9
        assert result.timezone_name == "Europe/Berlin"

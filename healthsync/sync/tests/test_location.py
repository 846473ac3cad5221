"""Tests for location fix waiting and attachment."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from healthsync.sync.base import LocationFix, MeasurementSnapshot
from healthsync.sync.location import PushedLocationSource, attach_location, wait_for_location_fix
from healthsync.sync.tests.conftest import T0, FakeClock, minutes


def fix_at(ts, lat: float = 52.52, lon: float = 13.40) -> LocationFix:
    return LocationFix(latitude=lat, longitude=lon, timestamp=ts)


class TestPushedLocationSource:
    def test_keeps_latest_fix(self) -> None:
        src = PushedLocationSource()
        src.push(fix_at(T0))
        src.push(fix_at(T0 + minutes(1), lat=1.0))
        assert src.last_fix().latitude == 1.0

    def test_ignores_out_of_order_fix(self) -> None:
        src = PushedLocationSource()
        src.push(fix_at(T0 + minutes(1), lat=1.0))
        src.push(fix_at(T0, lat=2.0))
        assert src.last_fix().latitude == 1.0


class TestWaitForLocationFix:
    @pytest.mark.asyncio
    async def test_fresh_fix_returned_without_polling(self) -> None:
        src = PushedLocationSource()
        src.push(fix_at(T0 - timedelta(seconds=10)))
        sleep = AsyncMock()

        fix = await wait_for_location_fix(src, FakeClock(), sleep=sleep)

        assert fix is not None
        assert src.update_requests == 0
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self) -> None:
        src = PushedLocationSource()
        sleep = AsyncMock()

        fix = await wait_for_location_fix(
            src, FakeClock(), attempts=5, interval_seconds=1.0, sleep=sleep
        )

        assert fix is None
        assert src.update_requests == 1
        assert sleep.await_count == 5
        sleep.assert_awaited_with(1.0)

    @pytest.mark.asyncio
    async def test_stale_fix_triggers_update(self) -> None:
        src = PushedLocationSource()
        src.push(fix_at(T0 - minutes(5)))

        fix = await wait_for_location_fix(
            src, FakeClock(), max_age_seconds=60, sleep=AsyncMock()
        )

        assert fix is None
        assert src.update_requests == 1

    @pytest.mark.asyncio
    async def test_fix_arriving_while_polling(self) -> None:
        src = PushedLocationSource()
        arrivals = iter([None, fix_at(T0)])

        async def _sleep(_: float) -> None:
            fix = next(arrivals, None)
            if fix is not None:
                src.push(fix)

        fix = await wait_for_location_fix(src, FakeClock(), sleep=_sleep)

        assert fix == fix_at(T0)


class TestAttachLocation:
    def test_no_fix_leaves_snapshots_untouched(self) -> None:
        snaps = [MeasurementSnapshot(timestamp=T0)]
        assert attach_location(snaps, None) == snaps

    def test_only_snapshots_near_the_fix_get_coordinates(self) -> None:
        snaps = [MeasurementSnapshot(timestamp=T0 + minutes(i)) for i in range(6)]
        result = attach_location(snaps, fix_at(T0 + minutes(5)), max_age_seconds=60)

        assert [s.has_location for s in result] == [False] * 4 + [True, True]
        assert result[-1].latitude == pytest.approx(52.52)

    def test_existing_coordinates_are_kept(self) -> None:
        snap = MeasurementSnapshot(timestamp=T0, latitude=1.0, longitude=2.0)
        result = attach_location([snap], fix_at(T0))
        assert (result[0].latitude, result[0].longitude) == (1.0, 2.0)

    def test_does_not_mutate_inputs(self) -> None:
        snap = MeasurementSnapshot(timestamp=T0, heart_rate=60.0)
        attach_location([snap], fix_at(T0))
        assert not snap.has_location

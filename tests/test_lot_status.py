"""
Тесты вычисления статусов лота и машин
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from database.models import CarStatus, LotStatus
from services.errors import InvalidInput
from services.lot_status import (
    car_status_for_lot,
    plan_lot_schedule,
    resolve_car_status,
    resolve_lot_status,
    resolve_stored_lot_status,
    validate_window,
)

START = datetime(2025, 1, 10, 8, 0, tzinfo=timezone.utc)
END = datetime(2025, 1, 10, 10, 0, tzinfo=timezone.utc)


def at(hour, minute=0):
    return datetime(2025, 1, 10, hour, minute, tzinfo=timezone.utc)


@pytest.mark.parametrize("now,expected", [
    (at(9), LotStatus.ACTIVE),
    (at(11), LotStatus.CLOSED),
    (at(7), LotStatus.APPROVED),
    (START, LotStatus.ACTIVE),
    (END, LotStatus.ACTIVE),
    (END + timedelta(seconds=1), LotStatus.CLOSED),
])
def test_approved_lot_follows_window(now, expected):
    assert resolve_lot_status(True, False, START, END, now) is expected


def test_unapproved_lot_is_pending():
    for now in (at(7), at(9), at(11)):
        assert resolve_lot_status(False, False, START, END, now) is LotStatus.PENDING


@pytest.mark.parametrize("start,end", [
    (None, None),
    (START, None),
    (None, END),
])
def test_missing_bounds_resolve_to_approved(start, end):
    for now in (at(7), at(9), at(11)):
        assert resolve_lot_status(True, False, start, end, now) is LotStatus.APPROVED


def test_zero_width_window():
    instant = at(9)
    assert resolve_lot_status(True, False, instant, instant, instant) is LotStatus.ACTIVE
    assert resolve_lot_status(
        True, False, instant, instant, instant + timedelta(microseconds=1)
    ) is LotStatus.CLOSED


def test_early_closed_after_window_stays_closed():
    assert resolve_lot_status(True, True, START, END, at(11)) is LotStatus.EARLY_CLOSED


def test_early_closed_reactivates_for_new_future_start():
    assert resolve_lot_status(True, True, START, END, at(7)) is LotStatus.APPROVED


def test_early_closed_reactivates_inside_new_window():
    assert resolve_lot_status(True, True, START, END, at(9)) is LotStatus.ACTIVE


def test_early_closed_without_dates_stays_closed():
    assert resolve_lot_status(True, True, None, None, at(9)) is LotStatus.EARLY_CLOSED


def test_stored_early_closed_lot_is_sticky():
    """Сохраненное окно не считается новым, фоновая сверка лот не открывает"""
    lot = SimpleNamespace(
        approved=True,
        early_closed=True,
        bidding_start_date=START,
        bidding_end_date=END,
    )
    for now in (at(7), at(9), at(11)):
        assert resolve_stored_lot_status(lot, now) is LotStatus.EARLY_CLOSED


def test_resolver_accepts_naive_utc_values():
    naive_start = START.replace(tzinfo=None)
    naive_end = END.replace(tzinfo=None)
    assert resolve_lot_status(True, False, naive_start, naive_end, at(9)) is LotStatus.ACTIVE


def test_resolver_is_pure():
    args = (True, False, START, END, at(9))
    results = {resolve_lot_status(*args) for _ in range(5)}
    assert results == {LotStatus.ACTIVE}


def test_wire_labels():
    assert [status.value for status in LotStatus] == [
        "Pending", "Approved", "Active", "Closed", "Early Closed",
    ]
    assert [status.value for status in CarStatus] == ["Upcoming", "Active", "Closed"]


@pytest.mark.parametrize("lot_status,expected", [
    (LotStatus.PENDING, CarStatus.UPCOMING),
    (LotStatus.APPROVED, CarStatus.UPCOMING),
    (LotStatus.ACTIVE, CarStatus.ACTIVE),
    (LotStatus.CLOSED, CarStatus.CLOSED),
    (LotStatus.EARLY_CLOSED, CarStatus.CLOSED),
])
def test_car_status_mapping(lot_status, expected):
    assert car_status_for_lot(lot_status) is expected


def test_car_status_mapping_accepts_wire_label():
    assert car_status_for_lot("Early Closed") is CarStatus.CLOSED


def test_regular_car_follows_lot():
    assert resolve_car_status(LotStatus.CLOSED, at(9), START, END) is CarStatus.CLOSED


def test_reenabled_car_follows_own_window():
    car_start = at(10, 30)
    car_end = at(12)
    assert resolve_car_status(
        LotStatus.CLOSED, at(11), car_start, car_end, bidding_enabled=True, is_active=True
    ) is CarStatus.ACTIVE
    assert resolve_car_status(
        LotStatus.CLOSED, at(10), car_start, car_end, bidding_enabled=True, is_active=True
    ) is CarStatus.UPCOMING
    assert resolve_car_status(
        LotStatus.CLOSED, at(13), car_start, car_end, bidding_enabled=True, is_active=True
    ) is CarStatus.CLOSED


def test_reenabled_car_without_bidding_follows_lot():
    assert resolve_car_status(
        LotStatus.CLOSED, at(11), at(10, 30), at(12), bidding_enabled=False, is_active=True
    ) is CarStatus.CLOSED


def test_validate_window():
    validate_window(START, END)
    with pytest.raises(InvalidInput):
        validate_window(None, END)
    with pytest.raises(InvalidInput):
        validate_window(END, START)
    with pytest.raises(InvalidInput):
        validate_window(START, START)


def test_plan_clears_early_closure_for_future_window():
    lot = SimpleNamespace(approved=True, early_closed=True)
    plan = plan_lot_schedule(lot, at(12), at(14), now=at(11))

    assert plan.status is LotStatus.APPROVED
    assert plan.car_status is CarStatus.UPCOMING
    assert plan.clear_early_closed is True


def test_plan_keeps_early_closure_for_past_window():
    lot = SimpleNamespace(approved=True, early_closed=True)
    plan = plan_lot_schedule(lot, at(6), at(7), now=at(11))

    assert plan.status is LotStatus.EARLY_CLOSED
    assert plan.car_status is CarStatus.CLOSED
    assert plan.clear_early_closed is False


def test_plan_for_pending_lot():
    lot = SimpleNamespace(approved=False, early_closed=False)
    plan = plan_lot_schedule(lot, at(12), at(14), now=at(11))

    assert plan.status is LotStatus.PENDING
    assert plan.clear_early_closed is False

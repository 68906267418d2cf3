"""
Тесты ставок участников
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from database.models import Bid
from services.bid import (
    get_ranked_bids,
    get_user_bids,
    get_user_effective_bid,
    parse_amount,
    place_bid,
    withdraw_bid,
)
from services.errors import BiddingUnavailable, InvalidInput, PermissionDenied
from services.lot import early_close_lot, get_lot_cars


async def bid_rows(session, car_id):
    result = await session.execute(
        select(Bid.user_id, Bid.amount).where(Bid.car_id == car_id).order_by(Bid.id)
    )
    return [tuple(row) for row in result.all()]


async def first_car(session, lot):
    return (await get_lot_cars(session, lot.id))[0]


@pytest.mark.parametrize("value,expected", [
    ("100", Decimal("100.00")),
    ("12,500.5", Decimal("12500.50")),
    (250, Decimal("250.00")),
    (" 99.999 ", Decimal("100.00")),
])
def test_parse_amount(value, expected):
    assert parse_amount(value) == expected


@pytest.mark.parametrize("value", ["0", "-5", "abc", "", "NaN", "inf", None])
def test_parse_amount_rejects(value):
    with pytest.raises(InvalidInput):
        parse_amount(value)


@pytest.mark.asyncio
async def test_place_bid_on_active_car(session, make_lot, make_user, clock):
    lot = await make_lot(status="Active", car_status="Active")
    car = await first_car(session, lot)
    user = await make_user()

    bid = await place_bid(session, car.id, user.id, "15000", clock)

    assert bid.amount == Decimal("15000.00")
    assert bid.is_winner is False
    assert await bid_rows(session, car.id) == [(user.id, Decimal("15000.00"))]


@pytest.mark.asyncio
async def test_new_bid_replaces_previous_row(session, make_lot, make_user, clock):
    lot = await make_lot(status="Active", car_status="Active")
    car = await first_car(session, lot)
    user = await make_user()
    other = await make_user()

    await place_bid(session, car.id, user.id, "100", clock)
    await place_bid(session, car.id, other.id, "120", clock)
    clock.advance(timedelta(minutes=5))
    await place_bid(session, car.id, user.id, "150", clock)

    assert sorted(await bid_rows(session, car.id)) == sorted([
        (other.id, Decimal("120.00")),
        (user.id, Decimal("150.00")),
    ])

    ranked = await get_ranked_bids(session, car.id)
    assert [(r.user_id, r.rank) for r in ranked] == [(user.id, 1), (other.id, 2)]

    own = await get_user_effective_bid(session, car.id, other.id)
    assert own.rank == 2
    assert await get_user_effective_bid(session, car.id, 99999) is None


@pytest.mark.asyncio
async def test_invalid_amount_rejected_before_store(session, make_lot, make_user, clock):
    lot = await make_lot(status="Active", car_status="Active")
    car = await first_car(session, lot)
    user = await make_user()

    with pytest.raises(InvalidInput):
        await place_bid(session, car.id, user.id, "-10", clock)

    assert await bid_rows(session, car.id) == []


@pytest.mark.asyncio
async def test_unapproved_bidder_rejected(session, make_lot, make_user, clock):
    lot = await make_lot(status="Active", car_status="Active")
    car = await first_car(session, lot)
    user = await make_user(is_approved=False)

    with pytest.raises(PermissionDenied):
        await place_bid(session, car.id, user.id, "100", clock)


@pytest.mark.asyncio
async def test_no_bids_outside_window(session, make_lot, make_user, clock):
    lot = await make_lot(status="Active", car_status="Active")
    car = await first_car(session, lot)
    user = await make_user()

    clock.advance(timedelta(hours=2))

    with pytest.raises(BiddingUnavailable):
        await place_bid(session, car.id, user.id, "100", clock)


@pytest.mark.asyncio
async def test_no_bids_on_pending_or_disabled_cars(session, make_lot, make_user, clock):
    user = await make_user()
    pending = await make_lot(approved=False)
    disabled = await make_lot(status="Active", car_status="Active", bidding_enabled=False)

    with pytest.raises(BiddingUnavailable):
        await place_bid(session, (await first_car(session, pending)).id, user.id, "100", clock)
    with pytest.raises(BiddingUnavailable):
        await place_bid(session, (await first_car(session, disabled)).id, user.id, "100", clock)
    with pytest.raises(BiddingUnavailable):
        await place_bid(session, 99999, user.id, "100", clock)


@pytest.mark.asyncio
async def test_no_bids_after_early_close(session, make_lot, make_user, clock):
    lot = await make_lot(status="Active", car_status="Active")
    car = await first_car(session, lot)
    user = await make_user()
    await early_close_lot(session, lot.id, clock=clock)

    with pytest.raises(BiddingUnavailable):
        await place_bid(session, car.id, user.id, "100", clock)


@pytest.mark.asyncio
async def test_withdraw_own_bid(session, make_lot, make_user, clock):
    lot = await make_lot(status="Active", car_status="Active")
    car = await first_car(session, lot)
    user = await make_user()
    other = await make_user()
    bid = await place_bid(session, car.id, user.id, "100", clock)

    with pytest.raises(InvalidInput):
        await withdraw_bid(session, bid.id, other.id, clock)

    await withdraw_bid(session, bid.id, user.id, clock)

    assert await bid_rows(session, car.id) == []


@pytest.mark.asyncio
async def test_user_bids_listing(session, make_lot, make_user, clock):
    lot = await make_lot(cars=2, status="Active", car_status="Active")
    cars = await get_lot_cars(session, lot.id)
    user = await make_user()

    await place_bid(session, cars[0].id, user.id, "100", clock)
    clock.advance(timedelta(minutes=1))
    await place_bid(session, cars[1].id, user.id, "200", clock)

    rows = await get_user_bids(session, user.id)

    assert [(car.id, bid.amount) for bid, car in rows] == [
        (cars[1].id, Decimal("200.00")),
        (cars[0].id, Decimal("100.00")),
    ]

"""
Тесты фоновой сверки статусов
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

import services.cascade as cascade
import services.notifications as notifications
import services.scheduler as scheduler
from database.models import Car, Lot
from services.errors import PartialCascadeFailure, TransientNetworkFailure
from services.scheduler import (
    STORE_SWEEP_PROCEDURES,
    call_store_procedure,
    refresh_all_lot_statuses,
    run_status_sweep,
    run_store_sweeps,
)


async def lot_and_car_statuses(session, lot_id):
    lot_status = (await session.execute(select(Lot.status).where(Lot.id == lot_id))).scalar_one()
    result = await session.execute(select(Car.status).where(Car.lot_id == lot_id).order_by(Car.id))
    return lot_status, list(result.scalars().all())


async def failing_write(*args, **kwargs):
    raise TransientNetworkFailure("обновление машин: хранилище недоступно")


@pytest.mark.asyncio
async def test_missing_store_procedure_is_not_fatal(session):
    """В SQLite процедур нет, ошибка глотается"""
    assert await call_store_procedure(session, "refresh_car_statuses") is False


@pytest.mark.asyncio
async def test_store_sweeps_report_each_procedure(session):
    results = await run_store_sweeps(session)

    assert list(results) == list(STORE_SWEEP_PROCEDURES)
    assert set(results.values()) == {False}


@pytest.mark.asyncio
async def test_session_usable_after_failed_procedure(session, make_lot):
    await run_store_sweeps(session)

    lot = await make_lot()
    assert (await session.execute(select(Lot.id))).scalars().all() == [lot.id]


@pytest.mark.asyncio
async def test_refresh_all_converges(session, make_lot, clock):
    stale_active = await make_lot(status="Approved")
    pending = await make_lot(approved=False)
    finished = await make_lot(
        start=datetime(2025, 1, 9, 8, 0, tzinfo=timezone.utc),
        end=datetime(2025, 1, 9, 10, 0, tzinfo=timezone.utc),
        status="Active",
        car_status="Active",
    )

    failures = await refresh_all_lot_statuses(session, clock)

    assert failures == []
    assert await lot_and_car_statuses(session, stale_active.id) == ("Active", ["Active", "Active"])
    assert await lot_and_car_statuses(session, pending.id) == ("Pending", ["Upcoming", "Upcoming"])
    assert await lot_and_car_statuses(session, finished.id) == ("Closed", ["Closed", "Closed"])

    # Повторный проход ничего не меняет
    assert await refresh_all_lot_statuses(session, clock) == []
    assert await lot_and_car_statuses(session, stale_active.id) == ("Active", ["Active", "Active"])


@pytest.mark.asyncio
async def test_refresh_all_collects_partial_failures(session, make_lot, clock, monkeypatch):
    stale = await make_lot(status="Approved")
    consistent = await make_lot(status="Active", car_status="Active")
    monkeypatch.setattr(cascade, "_write_cars", failing_write)

    failures = await refresh_all_lot_statuses(session, clock)

    assert len(failures) == 1
    assert isinstance(failures[0], PartialCascadeFailure)
    assert failures[0].lot_id == stale.id
    assert await lot_and_car_statuses(session, consistent.id) == ("Active", ["Active", "Active"])


@pytest.mark.asyncio
async def test_status_sweep_notifies_operators(session_maker, session, make_lot, make_user, clock, monkeypatch):
    await make_lot(status="Approved")
    business = await make_user(is_business=True)
    monkeypatch.setattr(scheduler, "async_session_maker", session_maker)
    monkeypatch.setattr(notifications, "async_session_maker", session_maker)
    monkeypatch.setattr(cascade, "_write_cars", failing_write)
    bot = AsyncMock()

    await run_status_sweep(bot, clock)

    recipients = sorted(call.args[0] for call in bot.send_message.await_args_list)
    assert recipients == sorted([1001, business.telegram_id])
    assert "Не удалось согласовать" in bot.send_message.await_args_list[0].args[1]


@pytest.mark.asyncio
async def test_status_sweep_without_failures_is_silent(session_maker, make_lot, clock, monkeypatch):
    await make_lot(status="Approved")
    monkeypatch.setattr(scheduler, "async_session_maker", session_maker)
    monkeypatch.setattr(notifications, "async_session_maker", session_maker)
    bot = AsyncMock()

    await run_status_sweep(bot, clock)

    bot.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_store_error_on_one_lot_does_not_stop_sweep(session, make_lot, clock, car_write_guard):
    broken = await make_lot(status="Approved")
    healthy = await make_lot(status="Approved")
    broken_id, healthy_id = broken.id, healthy.id
    await car_write_guard.refuse(broken_id)

    failures = await refresh_all_lot_statuses(session, clock)

    assert [failure.lot_id for failure in failures] == [broken_id]
    assert await lot_and_car_statuses(session, broken_id) == ("Active", ["Upcoming", "Upcoming"])
    assert await lot_and_car_statuses(session, healthy_id) == ("Active", ["Active", "Active"])

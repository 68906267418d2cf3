"""Распространение статуса лота на его машины"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from database.models.car import Car, CarStatus
from database.models.lot import Lot, LotStatus
from services.clock import Clock, system_clock
from services.errors import AuctionError, PartialCascadeFailure, store_call
from services.lot_status import (
    CLOSED_LOT_STATUSES,
    car_status_for_lot,
    resolve_car_status,
    resolve_stored_lot_status,
)

logger = logging.getLogger(__name__)


async def close_remaining_cars(session: AsyncSession, lot_id: int) -> int:
    """Корректирующий проход: закрыть машины закрытого лота, оставшиеся открытыми

    Машины, открытые вручную (is_active), живут по своему окну и не трогаются.
    """
    async with store_call(session, f"закрытие машин лота {lot_id}"):
        result = await session.execute(
            update(Car)
            .where(
                Car.lot_id == lot_id,
                Car.status != CarStatus.CLOSED.value,
                Car.is_active == False,  # noqa: E712
            )
            .values(status=CarStatus.CLOSED.value)
        )
        await session.commit()
    if result.rowcount:
        logger.info(f"Лот {lot_id}: дозакрыто машин: {result.rowcount}")
    return result.rowcount or 0


async def _write_cars(
    session: AsyncSession,
    lot_id: int,
    car_status: CarStatus,
    start: Optional[datetime],
    end: Optional[datetime],
    car_ids: Optional[Iterable[int]],
    enable_bidding: bool,
) -> int:
    values = {"status": car_status.value}
    if start is not None and end is not None:
        values["bidding_start_date"] = start
        values["bidding_end_date"] = end
    if enable_bidding:
        values["bidding_enabled"] = True

    stmt = (
        update(Car)
        .where(Car.lot_id == lot_id, Car.is_active == False)  # noqa: E712
        .values(**values)
    )
    if car_ids is not None:
        stmt = stmt.where(Car.id.in_(list(car_ids)))

    async with store_call(session, f"обновление машин лота {lot_id}"):
        result = await session.execute(stmt)
        await session.commit()
    return result.rowcount or 0


async def apply_lot_status(
    session: AsyncSession,
    lot: Lot,
    status: LotStatus,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    car_ids: Optional[Iterable[int]] = None,
    enable_bidding: bool = False,
    lot_values: Optional[dict] = None,
) -> CarStatus:
    """Записать статус лота и согласованный статус всех его машин

    Сначала пишется лот, потом машины, потом для закрытых лотов корректирующий
    проход. Ошибка записи лота пробрасывается как есть (ничего не изменено).
    Ошибка после записи лота превращается в PartialCascadeFailure, записанный
    лот не откатывается.

    Повторный вызов с теми же аргументами дает тот же результат.
    """
    status = LotStatus(status)
    car_status = car_status_for_lot(status)
    # После отката сессии атрибуты lot недоступны без запроса к базе
    lot_id, lot_number = lot.id, lot.lot_number

    values = dict(lot_values or {})
    values["status"] = status.value
    if start is not None and end is not None:
        values["bidding_start_date"] = start
        values["bidding_end_date"] = end

    async with store_call(session, f"обновление лота {lot_id}"):
        await session.execute(
            update(Lot)
            .where(Lot.id == lot_id)
            .values(**values)
        )
        await session.commit()
    for key, value in values.items():
        set_committed_value(lot, key, value)

    try:
        updated = await _write_cars(
            session, lot_id, car_status, start, end, car_ids, enable_bidding
        )
        logger.info(
            f"Лот {lot_number}: статус '{status.value}', "
            f"машин обновлено: {updated} ('{car_status.value}')"
        )
        if status in CLOSED_LOT_STATUSES:
            await close_remaining_cars(session, lot_id)
    except (AuctionError, SQLAlchemyError) as e:
        logger.error(f"Лот {lot_number} записан, но машины не обновлены: {e!r}")
        raise PartialCascadeFailure(lot_id, status.value, e) from e

    return car_status


async def refresh_car_status(
    session: AsyncSession,
    car: Car,
    lot: Lot,
    clock: Clock = system_clock,
) -> CarStatus:
    """Пересчитать и при необходимости записать статус отдельной машины"""
    now = clock.now()
    status = resolve_car_status(
        lot_status=resolve_stored_lot_status(lot, now),
        now=now,
        start=car.bidding_start_date,
        end=car.bidding_end_date,
        bidding_enabled=car.bidding_enabled,
        is_active=car.is_active,
    )
    previous = car.status
    if previous != status.value:
        async with store_call(session, f"обновление машины {car.id}"):
            await session.execute(
                update(Car)
                .where(Car.id == car.id)
                .values(status=status.value)
            )
            await session.commit()
        logger.info(f"Машина {car.id}: статус '{previous}' -> '{status.value}'")
        set_committed_value(car, "status", status.value)
    return status


async def _has_inconsistent_cars(session: AsyncSession, lot_id: int, expected: CarStatus) -> bool:
    result = await session.execute(
        select(Car.id)
        .where(
            Car.lot_id == lot_id,
            Car.is_active == False,  # noqa: E712
            Car.status != expected.value,
        )
        .limit(1)
    )
    return result.first() is not None


async def refresh_lot_status(
    session: AsyncSession,
    lot: Lot,
    clock: Clock = system_clock,
) -> LotStatus:
    """Пересчитать сохраненный лот и его машины

    Пишет в базу только если кэш статуса лота устарел или какая-то машина
    не совпадает со статусом лота.
    """
    status = resolve_stored_lot_status(lot, clock.now())
    expected = car_status_for_lot(status)

    if lot.status != status.value or await _has_inconsistent_cars(session, lot.id, expected):
        logger.info(f"Лот {lot.lot_number}: пересчет статуса '{lot.status}' -> '{status.value}'")
        await apply_lot_status(session, lot, status)

    result = await session.execute(
        select(Car)
        .where(Car.lot_id == lot.id, Car.is_active == True)  # noqa: E712
        .execution_options(populate_existing=True)
    )
    for car in result.scalars().all():
        await refresh_car_status(session, car, lot, clock)

    return status

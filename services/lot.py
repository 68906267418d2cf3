"""Сервис для работы с лотами"""
import logging
from typing import Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from database.models.car import Car, CarStatus
from database.models.lot import Lot, LotStatus
from services.cascade import apply_lot_status, refresh_car_status
from services.clock import Clock, system_clock
from services.errors import InvalidInput, store_call
from services.lot_status import (
    EARLY_CLOSABLE_STATUSES,
    plan_lot_schedule,
    resolve_lot_status,
    resolve_stored_lot_status,
    validate_window,
)

logger = logging.getLogger(__name__)


async def get_lot(session: AsyncSession, lot_id: int) -> Lot:
    """Получить лот по id"""
    result = await session.execute(select(Lot).where(Lot.id == lot_id))
    lot = result.scalar_one_or_none()
    if not lot:
        raise InvalidInput(f"Лот {lot_id} не найден")
    return lot


async def get_lot_by_number(session: AsyncSession, lot_number: str) -> Optional[Lot]:
    """Найти лот по номеру"""
    result = await session.execute(
        select(Lot).where(Lot.lot_number == lot_number.strip())
    )
    return result.scalar_one_or_none()


async def get_lot_cars(session: AsyncSession, lot_id: int) -> list[Car]:
    """Машины лота"""
    result = await session.execute(
        select(Car).where(Car.lot_id == lot_id).order_by(Car.id.asc())
    )
    return list(result.scalars().all())


async def list_lots(session: AsyncSession) -> list[Lot]:
    """Все лоты, новые первыми"""
    result = await session.execute(
        select(Lot).order_by(Lot.created_at.desc(), Lot.id.desc())
    )
    return list(result.scalars().all())


async def _ensure_lot_number_free(
    session: AsyncSession,
    lot_number: str,
    exclude_lot_id: Optional[int] = None,
) -> None:
    query = select(Lot.id).where(Lot.lot_number == lot_number)
    if exclude_lot_id is not None:
        query = query.where(Lot.id != exclude_lot_id)
    result = await session.execute(query)
    if result.first() is not None:
        raise InvalidInput(f"Лот с номером {lot_number} уже существует")


async def create_lot(
    session: AsyncSession,
    lot_number: str,
    cars: Iterable[dict] = (),
) -> Lot:
    """Создать лот в статусе Pending вместе с машинами"""
    lot_number = (lot_number or "").strip()
    if not lot_number:
        raise InvalidInput("Номер лота не может быть пустым")
    await _ensure_lot_number_free(session, lot_number)

    lot = Lot(
        lot_number=lot_number,
        approved=False,
        early_closed=False,
        status=LotStatus.PENDING.value,
    )
    for car_data in cars:
        lot.cars.append(
            Car(
                status=CarStatus.UPCOMING.value,
                bidding_enabled=False,
                is_active=False,
                **car_data,
            )
        )

    car_count = len(lot.cars)

    async with store_call(session, f"создание лота {lot_number}"):
        session.add(lot)
        await session.commit()
        await session.refresh(lot)
    logger.info(f"Лот {lot_number} создан, машин: {car_count}")
    return lot


async def approve_lot(
    session: AsyncSession,
    lot_id: int,
    start_local: str,
    end_local: str,
    approved_by: Optional[int] = None,
    clock: Clock = system_clock,
) -> Lot:
    """Одобрить лот и назначить даты торгов (даты в местном времени)"""
    start = clock.to_storage_instant(start_local)
    end = clock.to_storage_instant(end_local)
    validate_window(start, end)

    lot = await get_lot(session, lot_id)
    if lot.approved:
        raise InvalidInput(f"Лот {lot.lot_number} уже одобрен, для смены дат используйте перенос")

    now = clock.now()
    status = resolve_lot_status(
        approved=True,
        early_closed=False,
        start=start,
        end=end,
        now=now,
    )
    await apply_lot_status(
        session,
        lot,
        status,
        start=start,
        end=end,
        enable_bidding=True,
        lot_values={
            "approved": True,
            "approved_at": now,
            "approved_by": approved_by,
        },
    )
    logger.info(f"Лот {lot.lot_number} одобрен: {clock.to_display(start)} - {clock.to_display(end)}")
    return lot


async def reschedule_lot(
    session: AsyncSession,
    lot_id: int,
    start_local: str,
    end_local: str,
    lot_number: Optional[str] = None,
    clock: Clock = system_clock,
) -> Lot:
    """Изменить даты торгов (и номер лота, пока он не одобрен)

    Будущий старт или окно, включающее текущий момент, снимают досрочное закрытие.
    """
    start = clock.to_storage_instant(start_local)
    end = clock.to_storage_instant(end_local)

    lot = await get_lot(session, lot_id)
    plan = plan_lot_schedule(lot, start, end, clock.now())

    lot_values = {}
    if lot_number is not None and lot_number.strip() != lot.lot_number:
        # Номер фиксируется после одобрения
        if lot.approved or lot.status != LotStatus.PENDING.value:
            raise InvalidInput("Номер лота можно менять только до одобрения")
        lot_number = lot_number.strip()
        if not lot_number:
            raise InvalidInput("Номер лота не может быть пустым")
        await _ensure_lot_number_free(session, lot_number, exclude_lot_id=lot.id)
        lot_values["lot_number"] = lot_number

    if plan.clear_early_closed:
        lot_values.update(early_closed=False, early_closed_at=None, early_closed_by=None)
        logger.info(f"Лот {lot.lot_number}: снято досрочное закрытие")

    await apply_lot_status(
        session,
        lot,
        plan.status,
        start=plan.start,
        end=plan.end,
        lot_values=lot_values,
    )
    return lot


async def early_close_lot(
    session: AsyncSession,
    lot_id: int,
    closed_by: Optional[int] = None,
    clock: Clock = system_clock,
) -> Lot:
    """Досрочно закрыть лот"""
    lot = await get_lot(session, lot_id)
    now = clock.now()
    current = resolve_stored_lot_status(lot, now)
    if lot.early_closed or current not in EARLY_CLOSABLE_STATUSES:
        raise InvalidInput(
            f"Лот {lot.lot_number} в статусе '{current.value}' нельзя закрыть досрочно"
        )

    await apply_lot_status(
        session,
        lot,
        LotStatus.EARLY_CLOSED,
        lot_values={
            "early_closed": True,
            "early_closed_at": now,
            "early_closed_by": closed_by,
        },
    )
    logger.info(f"Лот {lot.lot_number} закрыт досрочно")
    return lot


async def delete_lot(session: AsyncSession, lot_id: int) -> None:
    """Удалить лот вместе с машинами и ставками"""
    lot = await get_lot(session, lot_id)
    async with store_call(session, f"удаление лота {lot_id}"):
        await session.execute(delete(Lot).where(Lot.id == lot_id))
        await session.commit()
    logger.info(f"Лот {lot.lot_number} удален")


async def set_car_bidding(
    session: AsyncSession,
    car_ids: Iterable[int],
    enabled: bool,
    start_local: Optional[str] = None,
    end_local: Optional[str] = None,
    clock: Clock = system_clock,
) -> dict[int, CarStatus]:
    """Включить или выключить ставки по отдельным машинам одобренных лотов

    С собственным окном торгов машина открывается заново (is_active) и живет
    по этому окну, даже если лот уже закрыт. Без окна машина возвращается
    к окну и статусу своего лота.
    """
    car_ids = sorted(set(car_ids))
    if not car_ids:
        raise InvalidInput("Не указаны машины")
    if (start_local is None) != (end_local is None):
        raise InvalidInput("Нужно указать дату начала и дату окончания торгов")

    reopen = start_local is not None
    if reopen:
        if not enabled:
            raise InvalidInput("Окно торгов задается только при включении ставок")
        start = clock.to_storage_instant(start_local)
        end = clock.to_storage_instant(end_local)
        validate_window(start, end)

    result = await session.execute(
        select(Car, Lot)
        .join(Lot, Car.lot_id == Lot.id)
        .where(Car.id.in_(car_ids))
        .order_by(Car.id.asc())
        .execution_options(populate_existing=True)
    )
    rows = result.all()
    missing = sorted(set(car_ids) - {car.id for car, _ in rows})
    if missing:
        raise InvalidInput(f"Машины не найдены: {', '.join(str(car_id) for car_id in missing)}")
    for car, lot in rows:
        if not lot.approved:
            raise InvalidInput(f"Лот {lot.lot_number} еще не одобрен")
        if reopen and lot.early_closed:
            raise InvalidInput(
                f"Лот {lot.lot_number} закрыт досрочно, сначала перенесите его торги"
            )

    # Собственное окно машины или окно ее лота
    car_values = {}
    for car, lot in rows:
        values = {"bidding_enabled": enabled, "is_active": reopen}
        if reopen:
            values.update(bidding_start_date=start, bidding_end_date=end)
        else:
            values.update(
                bidding_start_date=lot.bidding_start_date,
                bidding_end_date=lot.bidding_end_date,
            )
        car_values[car.id] = values

    async with store_call(session, f"ставки по машинам {car_ids}"):
        for car_id, values in car_values.items():
            await session.execute(
                update(Car)
                .where(Car.id == car_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        await session.commit()

    statuses = {}
    for car, lot in rows:
        for key, value in car_values[car.id].items():
            set_committed_value(car, key, value)
        statuses[car.id] = await refresh_car_status(session, car, lot, clock)

    logger.info(
        f"Ставки по машинам {car_ids}: {'включены' if enabled else 'выключены'}"
        + (f", окно {clock.to_display(start)} - {clock.to_display(end)}" if reopen else "")
    )
    return statuses

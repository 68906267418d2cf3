"""Планировщик фоновой сверки статусов лотов и машин"""
import asyncio
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from aiogram import Bot

from config import settings
from database.connection import async_session_maker
from database.models.lot import Lot
from services.cascade import refresh_lot_status
from services.clock import Clock, system_clock
from services.errors import (
    AuctionError,
    PartialCascadeFailure,
    is_non_fatal,
    store_call,
    transient_retrying,
)
from services.notifications import notify_operators

logger = logging.getLogger(__name__)

# Процедуры хранилища: пересчет статусов машин и починка машин в закрытых лотах
STORE_SWEEP_PROCEDURES = ("refresh_car_statuses", "fix_cars_in_closed_lots")


async def call_store_procedure(session: AsyncSession, name: str) -> bool:
    """Вызвать процедуру хранилища без права на ошибку

    Любая ошибка здесь не фатальна: отказ в доступе и отсутствующая функция
    ожидаемы и пишутся только в debug, остальное - в warning.
    """
    try:
        async for attempt in transient_retrying():
            with attempt:
                async with store_call(session, name):
                    await session.execute(select(getattr(func, name)()))
                    await session.commit()
    except (AuctionError, SQLAlchemyError) as e:
        if is_non_fatal(e):
            logger.debug(f"Процедура {name} недоступна: {e!r}")
        else:
            logger.warning(f"Процедура {name} завершилась с ошибкой: {e!r}")
        return False
    return True


async def run_store_sweeps(session: AsyncSession) -> dict[str, bool]:
    """Запустить сверки на стороне хранилища"""
    return {name: await call_store_procedure(session, name) for name in STORE_SWEEP_PROCEDURES}


async def refresh_all_lot_statuses(
    session: AsyncSession,
    clock: Clock = system_clock,
) -> list[PartialCascadeFailure]:
    """Пересчитать все одобренные лоты и их машины

    Ошибка по одному лоту не останавливает остальные; частичные сбои
    возвращаются, чтобы сообщить о них операторам.
    """
    result = await session.execute(
        select(Lot.id, Lot.lot_number).where(Lot.approved == True).order_by(Lot.id.asc())  # noqa: E712
    )
    lots = result.all()

    failures = []
    for lot_id, lot_number in lots:
        try:
            # Сбой предыдущего лота откатывает сессию, поэтому лот читается заново
            lot_result = await session.execute(
                select(Lot).where(Lot.id == lot_id).execution_options(populate_existing=True)
            )
            lot = lot_result.scalar_one_or_none()
            if lot is None:
                continue
            await refresh_lot_status(session, lot, clock)
        except PartialCascadeFailure as e:
            failures.append(e)
        except (AuctionError, SQLAlchemyError) as e:
            logger.error(f"Ошибка при пересчете лота {lot_number}: {e!r}")
            await session.rollback()
    return failures


async def run_status_sweep(bot: Optional[Bot] = None, clock: Clock = system_clock) -> None:
    """Один проход сверки: процедуры хранилища, затем пересчет на клиенте"""
    async with async_session_maker() as session:
        await run_store_sweeps(session)
        failures = await refresh_all_lot_statuses(session, clock)

    if failures and bot is not None:
        text = "⚠️ Не удалось согласовать статусы машин:\n\n" + "\n".join(
            f"• {failure}" for failure in failures
        )
        await notify_operators(bot, text)


async def scheduler_loop(bot: Bot):
    """Основной цикл планировщика"""
    while True:
        try:
            await run_status_sweep(bot)
        except Exception as e:
            logger.error(f"Ошибка в планировщике: {e}")

        await asyncio.sleep(settings.STATUS_SWEEP_INTERVAL_SECONDS)


def start_scheduler(bot: Bot) -> asyncio.Task:
    """Запустить планировщик"""
    task = asyncio.create_task(scheduler_loop(bot))
    logger.info("Планировщик статусов запущен")
    return task

"""Сервис для работы со ставками"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models.bid import Bid
from database.models.car import Car, CarStatus
from database.models.lot import Lot
from database.models.user import User
from services.bid_ranking import RankedBid, rank_bids
from services.clock import Clock, system_clock
from services.errors import BiddingUnavailable, InvalidInput, PermissionDenied, store_call
from services.lot_status import resolve_stored_car_status

logger = logging.getLogger(__name__)


def parse_amount(amount) -> Decimal:
    """Проверить сумму ставки: конечное положительное число"""
    try:
        value = Decimal(str(amount).strip().replace(",", ""))
    except (InvalidOperation, ValueError) as e:
        raise InvalidInput(f"Неверная сумма ставки: {amount!r}") from e
    if not value.is_finite() or value <= 0:
        raise InvalidInput("Сумма ставки должна быть больше нуля")
    return value.quantize(Decimal("0.01"))


async def get_car_with_lot(session: AsyncSession, car_id: int) -> Optional[tuple[Car, Lot]]:
    """Машина вместе с ее лотом"""
    result = await session.execute(
        select(Car, Lot).join(Lot, Car.lot_id == Lot.id).where(Car.id == car_id)
    )
    row = result.first()
    if not row:
        return None
    return row[0], row[1]


async def _get_car_with_lot(session: AsyncSession, car_id: int) -> tuple[Car, Lot]:
    row = await get_car_with_lot(session, car_id)
    if not row:
        raise BiddingUnavailable("Машина не найдена")
    return row


def check_biddable(car: Car, lot: Lot, clock: Clock = system_clock) -> None:
    """Проверить, что по машине сейчас принимаются ставки"""
    if not lot.approved or lot.early_closed:
        raise BiddingUnavailable("Торги по этой машине недоступны")
    if not car.bidding_enabled:
        raise BiddingUnavailable("Ставки по этой машине отключены")
    if resolve_stored_car_status(car, lot, clock.now()) is not CarStatus.ACTIVE:
        raise BiddingUnavailable("Торги по этой машине не идут")


async def place_bid(
    session: AsyncSession,
    car_id: int,
    user_id: int,
    amount,
    clock: Clock = system_clock,
) -> Bid:
    """Сделать или заменить ставку

    У участника остается одна строка на машину: новая ставка и удаление
    прежних фиксируются одним коммитом.
    """
    value = parse_amount(amount)

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_approved:
        raise PermissionDenied("Участник не допущен к торгам")

    car, lot = await _get_car_with_lot(session, car_id)
    check_biddable(car, lot, clock)

    bid = Bid(
        car_id=car_id,
        user_id=user_id,
        amount=value,
        is_winner=False,
        created_at=clock.now(),
    )
    async with store_call(session, f"ставка на машину {car_id}"):
        session.add(bid)
        await session.flush()
        await session.execute(
            delete(Bid).where(
                Bid.car_id == car_id,
                Bid.user_id == user_id,
                Bid.id != bid.id,
            )
        )
        await session.commit()
    logger.info(f"Ставка {value} на машину {car_id} от участника {user_id}")
    return bid


async def withdraw_bid(
    session: AsyncSession,
    bid_id: int,
    user_id: int,
    clock: Clock = system_clock,
) -> None:
    """Отозвать свою ставку, пока идут торги"""
    result = await session.execute(select(Bid).where(Bid.id == bid_id))
    bid = result.scalar_one_or_none()
    if not bid or bid.user_id != user_id:
        raise InvalidInput("Ставка не найдена")

    car, lot = await _get_car_with_lot(session, bid.car_id)
    check_biddable(car, lot, clock)

    async with store_call(session, f"удаление ставки {bid_id}"):
        await session.execute(
            delete(Bid).where(Bid.car_id == bid.car_id, Bid.user_id == user_id)
        )
        await session.commit()
    logger.info(f"Участник {user_id} отозвал ставку на машину {bid.car_id}")


async def get_car_bids(session: AsyncSession, car_id: int) -> list[Bid]:
    """Все строки ставок по машине"""
    result = await session.execute(
        select(Bid).where(Bid.car_id == car_id).order_by(Bid.created_at.desc())
    )
    return list(result.scalars().all())


async def get_ranked_bids(session: AsyncSession, car_id: int) -> list[RankedBid]:
    """Рейтинг действующих ставок по машине"""
    return rank_bids(await get_car_bids(session, car_id))


async def get_user_bids(session: AsyncSession, user_id: int) -> list[tuple[Bid, Car]]:
    """Ставки участника вместе с машинами, новые первыми"""
    result = await session.execute(
        select(Bid, Car)
        .join(Car, Bid.car_id == Car.id)
        .where(Bid.user_id == user_id)
        .order_by(Bid.created_at.desc())
    )
    return [(bid, car) for bid, car in result.all()]


async def get_user_effective_bid(
    session: AsyncSession,
    car_id: int,
    user_id: int,
) -> Optional[RankedBid]:
    """Действующая ставка участника с его местом в рейтинге"""
    for ranked in await get_ranked_bids(session, car_id):
        if ranked.user_id == user_id:
            return ranked
    return None

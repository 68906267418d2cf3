"""Выбор победителей по машинам"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.models.bid import Bid
from database.models.car import Car
from database.models.lot import Lot
from services.bid import get_car_bids
from services.bid_ranking import RankedBid, rank_bids, select_automatic_winner
from services.clock import Clock, system_clock
from services.errors import InvalidWinner, store_call
from services.lot import get_lot, get_lot_cars
from services.lot_status import CLOSED_LOT_STATUSES, resolve_stored_lot_status

logger = logging.getLogger(__name__)


async def set_manual_winner(session: AsyncSession, car_id: int, bid_id: int) -> Bid:
    """Назначить победителем указанную ставку

    Флаг снимается со всех остальных ставок машины тем же запросом,
    так что в базе никогда не бывает ни нуля, ни двух победителей.
    """
    result = await session.execute(select(Bid).where(Bid.id == bid_id))
    bid = result.scalar_one_or_none()
    if not bid or bid.car_id != car_id:
        raise InvalidWinner(f"Ставка {bid_id} не относится к машине {car_id}")

    async with store_call(session, f"выбор победителя для машины {car_id}"):
        await session.execute(
            update(Bid)
            .where(Bid.car_id == car_id)
            .values(is_winner=(Bid.id == bid_id))
            .execution_options(synchronize_session="fetch")
        )
        await session.commit()
    await session.refresh(bid)
    logger.info(f"Машина {car_id}: победитель - ставка {bid_id} (участник {bid.user_id})")
    return bid


async def get_winner(session: AsyncSession, car_id: int) -> Optional[Bid]:
    """Текущая ставка-победитель по машине"""
    result = await session.execute(
        select(Bid).where(Bid.car_id == car_id, Bid.is_winner == True)  # noqa: E712
    )
    return result.scalars().first()


async def assign_automatic_winner(
    session: AsyncSession,
    car_id: int,
    overwrite: bool = False,
) -> Optional[Bid]:
    """Назначить победителем первое место рейтинга

    Уже выбранного победителя не трогаем, если не указан overwrite.
    """
    if not overwrite:
        existing = await get_winner(session, car_id)
        if existing:
            return existing

    winner_bid_id = select_automatic_winner(rank_bids(await get_car_bids(session, car_id)))
    if winner_bid_id is None:
        return None
    return await set_manual_winner(session, car_id, winner_bid_id)


def _ensure_lot_closed(lot: Lot, clock: Clock) -> None:
    status = resolve_stored_lot_status(lot, clock.now())
    if status not in CLOSED_LOT_STATUSES:
        raise InvalidWinner(
            f"Лот {lot.lot_number} в статусе '{status.value}', победителей выбирают после закрытия"
        )


async def assign_lot_winners(
    session: AsyncSession,
    lot_id: int,
    overwrite: bool = False,
    clock: Clock = system_clock,
) -> dict[int, Optional[Bid]]:
    """Автоматически выбрать победителей по всем машинам закрытого лота"""
    lot = await get_lot(session, lot_id)
    _ensure_lot_closed(lot, clock)

    winners = {}
    for car in await get_lot_cars(session, lot_id):
        winners[car.id] = await assign_automatic_winner(session, car.id, overwrite=overwrite)
    assigned = sum(1 for bid in winners.values() if bid is not None)
    logger.info(f"Лот {lot.lot_number}: победители назначены по {assigned} из {len(winners)} машин")
    return winners


@dataclass
class CarResult:
    """Итоги торгов по машине"""
    car: Car
    ranking: list[RankedBid] = field(default_factory=list)
    winner_bid: Optional[Bid] = None

    @property
    def top(self) -> Optional[RankedBid]:
        return self.ranking[0] if self.ranking else None


async def get_lot_results(session: AsyncSession, lot_id: int) -> list[CarResult]:
    """Рейтинги и победители по всем машинам лота

    Победитель может оказаться не в рейтинге, если его строка была
    перебита более крупной ставкой того же участника.
    """
    cars = await get_lot_cars(session, lot_id)
    if not cars:
        return []

    result = await session.execute(
        select(Bid).where(Bid.car_id.in_([car.id for car in cars]))
    )
    bids_by_car: dict[int, list[Bid]] = {}
    for bid in result.scalars().all():
        bids_by_car.setdefault(bid.car_id, []).append(bid)

    results = []
    for car in cars:
        car_bids = bids_by_car.get(car.id, [])
        results.append(
            CarResult(
                car=car,
                ranking=rank_bids(car_bids),
                winner_bid=next((bid for bid in car_bids if bid.is_winner), None),
            )
        )
    return results

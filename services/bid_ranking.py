"""Ранжирование ставок по машине"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from services.clock import ensure_utc

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class RankedBid:
    """Действующая ставка участника с местом в рейтинге"""
    rank: int
    bid_id: Any
    car_id: Any
    user_id: Any
    amount: Decimal
    created_at: Optional[datetime]
    is_winner: bool
    bid: Any = None  # Исходная запись ставки


def _created(bid) -> datetime:
    return ensure_utc(bid.created_at) or _OLDEST


def _beats(candidate, current) -> bool:
    """Сильнее ли ставка candidate ставки current того же участника"""
    if candidate.amount != current.amount:
        return candidate.amount > current.amount
    if _created(candidate) != _created(current):
        return _created(candidate) > _created(current)
    # Тот же порядок, что и в _sort_key
    return str(candidate.id) < str(current.id)


def effective_bids(bids: Iterable) -> List:
    """Оставить по одной ставке на участника: самую большую, при равенстве - самую свежую"""
    best = {}
    for bid in bids:
        current = best.get(bid.user_id)
        if current is None or _beats(bid, current):
            best[bid.user_id] = bid
    return list(best.values())


def _sort_key(bid):
    # id в конце делает порядок независимым от порядка входных данных
    return (-Decimal(bid.amount), -_created(bid).timestamp(), str(bid.id))


def rank_bids(bids: Iterable) -> List[RankedBid]:
    """Действующие ставки по убыванию суммы, при равенстве - сначала более свежие

    Пустой список дает пустой результат.
    """
    ordered = sorted(effective_bids(bids), key=_sort_key)
    return [
        RankedBid(
            rank=position,
            bid_id=bid.id,
            car_id=bid.car_id,
            user_id=bid.user_id,
            amount=Decimal(bid.amount),
            created_at=bid.created_at,
            is_winner=bool(bid.is_winner),
            bid=bid,
        )
        for position, bid in enumerate(ordered, start=1)
    ]


def select_automatic_winner(ranked_bids: List[RankedBid]):
    """id ставки на первом месте или None"""
    if not ranked_bids:
        return None
    return ranked_bids[0].bid_id

"""Вычисление статусов лота и машин

Все функции чистые: результат зависит только от аргументов, поэтому их можно
вызывать сколько угодно раз из любых мест (одобрение, редактирование,
фоновая сверка) и получать одно и то же.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from database.models.car import CarStatus
from database.models.lot import LotStatus
from services.clock import ensure_utc
from services.errors import InvalidInput

# Статусы лота, при которых все машины лота закрыты
CLOSED_LOT_STATUSES = frozenset({LotStatus.CLOSED, LotStatus.EARLY_CLOSED})

# Из каких статусов оператор может закрыть лот досрочно
EARLY_CLOSABLE_STATUSES = frozenset({LotStatus.APPROVED, LotStatus.ACTIVE})


def _window_status(
    approved: bool,
    start: Optional[datetime],
    end: Optional[datetime],
    now: datetime,
) -> LotStatus:
    if not approved:
        return LotStatus.PENDING
    if start is not None and end is not None and start <= now <= end:
        return LotStatus.ACTIVE
    # Без обеих границ лот не бывает ни активным, ни закрытым
    if start is not None and end is not None and now > end:
        return LotStatus.CLOSED
    return LotStatus.APPROVED


def resolve_lot_status(
    approved: bool,
    early_closed: bool,
    start: Optional[datetime],
    end: Optional[datetime],
    now: datetime,
    dates_changed: bool = True,
) -> LotStatus:
    """Статус лота на момент now

    Досрочное закрытие держится, пока текущее окно торгов не заменено новым:
    если оператор назначил даты и now раньше начала окна или внутри окна,
    лот считается заново открытым. Для сохраненного лота dates_changed=False:
    его окно то же, что было при закрытии, и заменить его нечем, иначе фоновая
    сверка снова открыла бы лот, закрытый посреди торгов.
    """
    start, end, now = ensure_utc(start), ensure_utc(end), ensure_utc(now)

    if early_closed:
        before_window = start is not None and now < start
        inside_window = start is not None and end is not None and start <= now <= end
        if not (dates_changed and (before_window or inside_window)):
            return LotStatus.EARLY_CLOSED

    return _window_status(approved, start, end, now)


def resolve_stored_lot_status(lot, now: datetime) -> LotStatus:
    """Статус сохраненного лота на момент now"""
    return resolve_lot_status(
        approved=lot.approved,
        early_closed=lot.early_closed,
        start=lot.bidding_start_date,
        end=lot.bidding_end_date,
        now=now,
        dates_changed=False,
    )


def car_status_for_lot(lot_status: LotStatus) -> CarStatus:
    """Статус, который получают машины лота"""
    lot_status = LotStatus(lot_status)
    if lot_status is LotStatus.ACTIVE:
        return CarStatus.ACTIVE
    if lot_status in CLOSED_LOT_STATUSES:
        return CarStatus.CLOSED
    return CarStatus.UPCOMING


def resolve_car_status(
    lot_status: LotStatus,
    now: datetime,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    bidding_enabled: bool = True,
    is_active: bool = False,
) -> CarStatus:
    """Статус отдельной машины

    Обычная машина повторяет статус лота. Машина, вручную открытая заново
    (is_active при включенных ставках), живет по собственному окну торгов,
    даже если лот уже закрыт, чтобы ее ставки оставались видимыми.
    """
    if not (is_active and bidding_enabled):
        return car_status_for_lot(lot_status)

    start, end, now = ensure_utc(start), ensure_utc(end), ensure_utc(now)
    if start is not None and end is not None and start <= now <= end:
        return CarStatus.ACTIVE
    if end is not None and now > end:
        return CarStatus.CLOSED
    return CarStatus.UPCOMING


def resolve_stored_car_status(car, lot, now: datetime) -> CarStatus:
    """Статус сохраненной машины с учетом ее лота"""
    return resolve_car_status(
        lot_status=resolve_stored_lot_status(lot, now),
        now=now,
        start=car.bidding_start_date,
        end=car.bidding_end_date,
        bidding_enabled=car.bidding_enabled,
        is_active=car.is_active,
    )


@dataclass(frozen=True)
class SchedulePlan:
    """Результат оценки новых дат торгов для лота"""
    status: LotStatus
    start: datetime
    end: datetime
    clear_early_closed: bool

    @property
    def car_status(self) -> CarStatus:
        return car_status_for_lot(self.status)


def validate_window(start: Optional[datetime], end: Optional[datetime]) -> None:
    """Проверить окно торгов, заданное оператором"""
    if start is None or end is None:
        raise InvalidInput("Нужно указать дату начала и дату окончания торгов")
    if ensure_utc(end) <= ensure_utc(start):
        raise InvalidInput("Дата окончания торгов должна быть позже даты начала")


def plan_lot_schedule(lot, start: datetime, end: datetime, now: datetime) -> SchedulePlan:
    """Оценить новые даты торгов, назначенные оператором

    Для досрочно закрытого лота будущий старт или окно, включающее текущий
    момент, снимают досрочное закрытие; прошедшее окно его сохраняет.
    """
    validate_window(start, end)
    status = resolve_lot_status(
        approved=lot.approved,
        early_closed=lot.early_closed,
        start=start,
        end=end,
        now=now,
    )
    clear_early_closed = bool(lot.early_closed) and status is not LotStatus.EARLY_CLOSED
    return SchedulePlan(
        status=status,
        start=ensure_utc(start),
        end=ensure_utc(end),
        clear_early_closed=clear_early_closed,
    )

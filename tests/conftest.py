"""
Общие фикстуры тестов: база SQLite в памяти и фиксированные часы
"""

import os

# Модули конфигурации и подключения читают настройки при импорте
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BOT_TOKEN", "123456:TEST")
os.environ.setdefault("ADMIN_USER_IDS", "1001")

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import event, text
from sqlalchemy.pool import StaticPool

from database.connection import build_engine, build_session_maker, init_models
from database.models import Car, Lot, LotStatus, User
from services.clock import FixedClock

# 2025-01-10 09:00 UTC, середина окна лотов по умолчанию
NOW = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)
WINDOW_START = datetime(2025, 1, 10, 8, 0, tzinfo=timezone.utc)
WINDOW_END = datetime(2025, 1, 10, 10, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db_engine():
    """Отдельная база в памяти на каждый тест"""
    engine = build_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return build_session_maker(db_engine)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def make_user(session):
    """Фабрика пользователей"""
    counter = {"telegram_id": 5000}

    async def _make_user(is_approved=True, is_business=False, telegram_id=None):
        counter["telegram_id"] += 1
        user = User(
            telegram_id=telegram_id or counter["telegram_id"],
            username=f"user{counter['telegram_id']}",
            is_approved=is_approved,
            is_business=is_business,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_lot(session):
    """Фабрика лотов с машинами, сразу в заданном состоянии"""
    counter = {"lot": 0}

    async def _make_lot(
        cars=2,
        approved=True,
        early_closed=False,
        start=WINDOW_START,
        end=WINDOW_END,
        status=None,
        car_status="Upcoming",
        bidding_enabled=None,
    ):
        counter["lot"] += 1
        if status is None:
            status = LotStatus.APPROVED.value if approved else LotStatus.PENDING.value
        lot = Lot(
            lot_number=f"L-{counter['lot']:03d}",
            approved=approved,
            early_closed=early_closed,
            bidding_start_date=start if approved else None,
            bidding_end_date=end if approved else None,
            status=status,
        )
        enabled = approved if bidding_enabled is None else bidding_enabled
        for number in range(cars):
            lot.cars.append(
                Car(
                    sr_number=str(number + 1),
                    reg_no=f"DXB-{counter['lot']}{number}",
                    make_model=f"Toyota Land Cruiser #{number + 1}",
                    bidding_start_date=start if approved else None,
                    bidding_end_date=end if approved else None,
                    bidding_enabled=enabled,
                    is_active=False,
                    status=car_status,
                )
            )
        session.add(lot)
        await session.commit()
        await session.refresh(lot)
        return lot

    return _make_lot


class CarWriteGuard:
    """Триггер SQLite, который отклоняет обновление машин лота"""

    def __init__(self, session):
        self.session = session

    async def refuse(self, lot_id):
        await self.session.execute(text(
            f"CREATE TRIGGER refuse_car_write_{lot_id} BEFORE UPDATE ON cars "
            f"WHEN OLD.lot_id = {lot_id} "
            "BEGIN SELECT RAISE(ABORT, 'car write refused'); END"
        ))
        await self.session.commit()

    async def allow(self, lot_id):
        await self.session.execute(text(f"DROP TRIGGER refuse_car_write_{lot_id}"))
        await self.session.commit()


@pytest.fixture
def car_write_guard(session):
    return CarWriteGuard(session)

"""Подключение к базе данных"""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import declarative_base
from config import settings

# Базовый класс для моделей
Base = declarative_base()

# В SQLite автоинкремент работает только у INTEGER PRIMARY KEY
BigIntId = BigInteger().with_variant(Integer, "sqlite")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Создать асинхронный движок для указанного URL"""
    if url.startswith("postgresql"):
        # Соединения с удаленной базой могут рваться между запросами
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=False, future=True, **kwargs)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Фабрика сессий поверх движка"""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url)
async_session_maker = build_session_maker(engine)


async def init_models(bind: AsyncEngine = None) -> None:
    """Создать таблицы, которых еще нет"""
    # Регистрируем модели в метаданных
    import database.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncSession:
    """Получить сессию базы данных"""
    async with async_session_maker() as session:
        yield session

"""Сервис для работы с пользователями"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from config import settings
from database.models.user import User
from services.errors import InvalidInput


async def get_or_create_user(
    session: AsyncSession,
    telegram_id: int,
    username: str = None,
    first_name: str = None,
    last_name: str = None
) -> User:
    """Получить или создать пользователя"""
    result = await session.execute(
        select(User).where(User.telegram_id == telegram_id)
    )
    user = result.scalar_one_or_none()

    if not user:
        user = User(
            telegram_id=telegram_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
            is_approved=False,
            is_business=False,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
    elif username != user.username or first_name != user.first_name:
        # Обновляем данные, если изменились
        user.username = username
        user.first_name = first_name
        user.last_name = last_name
        await session.commit()

    return user


async def set_bidder_approval(
    session: AsyncSession,
    telegram_id: int,
    approved: bool = True
) -> User:
    """Допустить участника к торгам или снять допуск"""
    result = await session.execute(
        select(User).where(User.telegram_id == telegram_id)
    )
    user = result.scalar_one_or_none()

    if not user:
        raise InvalidInput("Пользователь не найден")

    user.is_approved = approved
    await session.commit()
    return user


async def is_operator(session: AsyncSession, telegram_id: int) -> bool:
    """Админ из настроек или бизнес-пользователь из БД"""
    if telegram_id in settings.admin_ids_list:
        return True

    result = await session.execute(
        select(User.id).where(
            User.telegram_id == telegram_id,
            User.is_business == True  # noqa: E712
        )
    )
    return result.first() is not None

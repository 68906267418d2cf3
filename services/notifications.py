"""Сервис для отправки уведомлений операторам"""
import logging

from aiogram import Bot
from sqlalchemy import select

from config import settings
from database.connection import async_session_maker
from database.models.user import User

logger = logging.getLogger(__name__)


async def get_operator_ids() -> list[int]:
    """Telegram ID админов из настроек и бизнес-пользователей из БД"""
    operator_ids = list(settings.admin_ids_list)

    async with async_session_maker() as session:
        result = await session.execute(
            select(User.telegram_id).where(User.is_business == True)  # noqa: E712
        )
        for telegram_id in result.scalars().all():
            if telegram_id not in operator_ids:
                operator_ids.append(telegram_id)

    return operator_ids


async def notify_operators(bot: Bot, text: str) -> int:
    """Отправить сообщение всем операторам, вернуть число доставленных"""
    delivered = 0
    for operator_id in await get_operator_ids():
        try:
            await bot.send_message(operator_id, text)
            delivered += 1
        except Exception as e:
            logger.error(f"Ошибка отправки уведомления оператору {operator_id}: {e}")
    return delivered

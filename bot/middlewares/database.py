"""Middleware для работы с базой данных"""
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject
from database.connection import async_session_maker
from services.clock import Clock, system_clock


class DatabaseMiddleware(BaseMiddleware):
    """Middleware для создания сессии БД и передачи часов аукциона"""

    def __init__(self, session_maker=async_session_maker, clock: Clock = system_clock):
        self.session_maker = session_maker
        self.clock = clock

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        async with self.session_maker() as session:
            data["session"] = session
            data["clock"] = self.clock
            return await handler(event, data)

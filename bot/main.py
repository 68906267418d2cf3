"""Главный файл бота"""
import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from config import settings
from bot.handlers import start, auction, admin
from bot.middlewares.database import DatabaseMiddleware
from database.connection import engine, init_models

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def start_change_listener(bot: Bot) -> asyncio.Task:
    """Пересчитывать статусы по уведомлениям базы об изменениях (только PostgreSQL)"""
    from services.changes import Debouncer, listen_for_changes
    from services.scheduler import run_status_sweep

    debouncer = Debouncer(lambda: run_status_sweep(bot))
    task = asyncio.create_task(listen_for_changes(engine, lambda payload: debouncer.trigger()))
    task.add_done_callback(lambda _: asyncio.ensure_future(debouncer.cancel()))
    return task


async def main():
    """Запуск бота"""
    await init_models()

    # Создаем бот и диспетчер
    bot = Bot(
        token=settings.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    dp = Dispatcher()

    # Регистрируем middleware
    dp.message.middleware(DatabaseMiddleware())
    dp.callback_query.middleware(DatabaseMiddleware())

    # Регистрируем роутеры
    dp.include_router(start.router)
    dp.include_router(admin.router)  # Команды операторов
    dp.include_router(auction.router)  # Ставки (FSM ввода суммы последним)

    # Запускаем планировщик сверки статусов
    from services.scheduler import start_scheduler
    background_tasks = [start_scheduler(bot)]

    if engine.dialect.name == "postgresql":
        background_tasks.append(start_change_listener(bot))

    logger.info("Бот запущен")

    # Запускаем polling
    try:
        await dp.start_polling(bot)
    finally:
        for task in background_tasks:
            task.cancel()


if __name__ == "__main__":
    asyncio.run(main())

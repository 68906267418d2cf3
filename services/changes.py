"""Подписка на изменения в хранилище и склеивание повторных пересчетов"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from config import settings

logger = logging.getLogger(__name__)


class Debouncer:
    """Откладывает вызов, пока поток событий не затихнет на delay секунд

    Пачка уведомлений об изменениях приводит к одному пересчету. Если событие
    пришло во время пересчета, после него запускается еще один.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        delay: Optional[float] = None,
    ):
        self.callback = callback
        self.delay = settings.REFRESH_DEBOUNCE_SECONDS if delay is None else delay
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._rerun = False

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self) -> None:
        """Сообщить об изменении; отложенный вызов переносится"""
        if self._running:
            self._rerun = True
            return
        if self.pending:
            self._task.cancel()
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        self._running = True
        try:
            await self.callback()
        except Exception as e:
            logger.error(f"Ошибка пересчета после изменений: {e}")
        finally:
            self._running = False
        if self._rerun:
            self._rerun = False
            self._task = asyncio.create_task(self._run())

    async def cancel(self) -> None:
        """Отменить отложенный вызов (например, при остановке бота)"""
        self._rerun = False
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


async def listen_for_changes(
    engine: AsyncEngine,
    on_change: Callable[[str], None],
    channel: Optional[str] = None,
) -> None:
    """Слушать канал LISTEN/NOTIFY PostgreSQL до отмены задачи"""
    channel = channel or settings.CHANGE_CHANNEL

    def _listener(connection, pid, notified_channel, payload):
        logger.debug(f"Изменение в канале {notified_channel}: {payload}")
        on_change(payload)

    async with engine.connect() as conn:
        raw = await conn.get_raw_connection()
        driver = raw.driver_connection
        await driver.add_listener(channel, _listener)
        logger.info(f"Подписка на канал изменений {channel}")
        try:
            await asyncio.Event().wait()
        finally:
            await driver.remove_listener(channel, _listener)

"""Время аукциона: текущий момент и перевод между местным временем и UTC

В базе все моменты хранятся в UTC. Операторы вводят и видят даты в местном
времени аукциона (Дубай, фиксированное смещение UTC+4 без летнего времени).
Все расчеты статусов берут "сейчас" только через Clock, чтобы в тестах
можно было подставить фиксированный момент.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import settings
from services.errors import InvalidInput

DISPLAY_TIMEZONE = timezone(
    timedelta(hours=settings.DISPLAY_UTC_OFFSET_HOURS),
    name="Asia/Dubai",
)

# Формат поля datetime-local: YYYY-MM-DDTHH:mm
LOCAL_INPUT_FORMAT = "%Y-%m-%dT%H:%M"

_LOCAL_INPUT_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})$")


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Привести момент к aware-datetime в UTC

    Драйверы без поддержки часовых поясов (sqlite) возвращают naive-значения,
    их считаем уже записанными в UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    """Системные часы"""

    def __init__(self, display_tz: timezone = DISPLAY_TIMEZONE):
        self.display_tz = display_tz

    def now(self) -> datetime:
        """Текущий момент в UTC"""
        return datetime.now(timezone.utc)

    def to_display(self, instant: Optional[datetime]) -> str:
        """UTC-момент -> строка местного времени для поля ввода (минутная точность)"""
        if instant is None:
            return ""
        return ensure_utc(instant).astimezone(self.display_tz).strftime(LOCAL_INPUT_FORMAT)

    def to_storage_instant(self, local_value: str) -> datetime:
        """Строка местного времени -> UTC-момент для записи в базу"""
        if not isinstance(local_value, str):
            raise InvalidInput(f"Ожидалась строка с датой и временем, получено: {local_value!r}")

        match = _LOCAL_INPUT_RE.fullmatch(local_value)
        if not match:
            raise InvalidInput(f"Неверный формат даты: {local_value!r}, ожидается YYYY-MM-DDTHH:MM")

        year, month, day, hour, minute = (int(part) for part in match.groups())
        try:
            local = datetime(year, month, day, hour, minute, tzinfo=self.display_tz)
        except ValueError as e:
            raise InvalidInput(f"Неверная дата {local_value!r}: {e}") from e
        return local.astimezone(timezone.utc)

    def format_display(self, instant: Optional[datetime]) -> str:
        """Человекочитаемая дата в местном времени, например 'Jun 1, 2025, 02:30 PM'"""
        if instant is None:
            return "-"
        local = ensure_utc(instant).astimezone(self.display_tz)
        return f"{local:%b} {local.day}, {local:%Y, %I:%M %p}"

    def local_input_now(self, offset_minutes: int = 0) -> str:
        """Текущее местное время для значения по умолчанию в поле ввода"""
        return self.to_display(self.now() + timedelta(minutes=offset_minutes))


class FixedClock(Clock):
    """Часы с заданным моментом (для тестов и пересчетов "на момент")"""

    def __init__(self, instant: datetime, display_tz: timezone = DISPLAY_TIMEZONE):
        super().__init__(display_tz)
        self.instant = ensure_utc(instant)

    def now(self) -> datetime:
        return self.instant

    def advance(self, delta: timedelta) -> datetime:
        """Сдвинуть часы вперед"""
        self.instant = self.instant + delta
        return self.instant


system_clock = Clock()


def to_display(instant: Optional[datetime]) -> str:
    """UTC-момент -> местная строка по системным часам"""
    return system_clock.to_display(instant)


def to_storage_instant(local_value: str) -> datetime:
    """Местная строка -> UTC-момент по системным часам"""
    return system_clock.to_storage_instant(local_value)

"""Ошибки аукциона и классификация ошибок хранилища"""
import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import settings

logger = logging.getLogger(__name__)


class AuctionError(Exception):
    """Базовая ошибка аукциона"""


class InvalidInput(AuctionError, ValueError):
    """Неверная дата или сумма, отклоняется до обращения к базе"""


class InvalidWinner(AuctionError):
    """Ставка не относится к машине, для которой выбирают победителя"""


class BiddingUnavailable(AuctionError, ValueError):
    """По машине сейчас нельзя делать ставки"""


class PermissionDenied(AuctionError):
    """Хранилище отказало в доступе"""


class TransientNetworkFailure(AuctionError):
    """Запрос не дошел до хранилища или оборвался"""


class PartialCascadeFailure(AuctionError):
    """Лот записан, но машины лота обновились не все

    Записанную часть не откатываем: корректирующий проход и фоновые сверки
    доводят данные до согласованного состояния, а оператору нужно сообщить,
    чтобы он мог повторить действие.
    """

    def __init__(self, lot_id: int, lot_status: str, cause: Optional[BaseException] = None):
        self.lot_id = lot_id
        self.lot_status = lot_status
        self.cause = cause
        super().__init__(
            f"Лот {lot_id} переведен в статус '{lot_status}', "
            f"но не удалось обновить машины: {cause}"
        )


class ErrorCategory(str, enum.Enum):
    """Категория ошибки хранилища"""
    PERMISSION_DENIED = "permission_denied"
    MISSING = "missing"  # Нет функции/таблицы/записи
    TRANSIENT = "transient"
    FATAL = "fatal"


# Для фоновых сверок эти ошибки ожидаемы и не показываются пользователю
NON_FATAL_CATEGORIES = frozenset({ErrorCategory.PERMISSION_DENIED, ErrorCategory.MISSING})

# SQLSTATE: insufficient_privilege, undefined_function, undefined_table
_PERMISSION_CODES = {"42501"}
_MISSING_CODES = {"42883", "42P01"}
# Коды ошибок REST-шлюза, которые встречаются в тексте ошибок прокси
_PERMISSION_MARKERS = ("permission denied", "insufficient privilege", "pgrst301")
_MISSING_MARKERS = ("does not exist", "no such function", "no such table", "pgrst116")


def _sqlstate(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for source in (orig, getattr(orig, "__cause__", None), exc):
        if source is None:
            continue
        code = getattr(source, "sqlstate", None) or getattr(source, "pgcode", None)
        if code:
            return str(code)
    return None


def classify_store_error(exc: BaseException) -> ErrorCategory:
    """Определить категорию ошибки, полученной от хранилища"""
    if isinstance(exc, PermissionDenied):
        return ErrorCategory.PERMISSION_DENIED
    if isinstance(exc, TransientNetworkFailure):
        return ErrorCategory.TRANSIENT

    code = _sqlstate(exc)
    if code in _PERMISSION_CODES:
        return ErrorCategory.PERMISSION_DENIED
    if code in _MISSING_CODES:
        return ErrorCategory.MISSING

    message = str(exc).lower()
    if any(marker in message for marker in _PERMISSION_MARKERS):
        return ErrorCategory.PERMISSION_DENIED
    if any(marker in message for marker in _MISSING_MARKERS):
        return ErrorCategory.MISSING

    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return ErrorCategory.TRANSIENT
    if isinstance(exc, (OperationalError, InterfaceError)):
        return ErrorCategory.TRANSIENT
    if isinstance(exc, (OSError, asyncio.TimeoutError)):
        return ErrorCategory.TRANSIENT
    return ErrorCategory.FATAL


def is_non_fatal(exc: BaseException) -> bool:
    """Можно ли молча проигнорировать ошибку фоновой сверки"""
    return classify_store_error(exc) in NON_FATAL_CATEGORIES


@asynccontextmanager
async def store_call(session: AsyncSession, action: str):
    """Выполнить обращение к хранилищу и перевести ошибки в ошибки аукциона

    Транзакция сессии откатывается, чтобы сессией можно было пользоваться дальше.
    """
    try:
        yield
    except (DBAPIError, OSError, asyncio.TimeoutError) as e:
        await session.rollback()
        category = classify_store_error(e)
        if category is ErrorCategory.PERMISSION_DENIED:
            raise PermissionDenied(f"{action}: нет доступа") from e
        if category is ErrorCategory.TRANSIENT:
            logger.warning(f"Сетевая ошибка при действии '{action}': {e!r}")
            raise TransientNetworkFailure(f"{action}: хранилище недоступно") from e
        raise


def transient_retrying(attempts: Optional[int] = None) -> AsyncRetrying:
    """Ограниченный повтор при TransientNetworkFailure

    Использование:
        async for attempt in transient_retrying():
            with attempt:
                await ...
    """
    return AsyncRetrying(
        retry=retry_if_exception_type(TransientNetworkFailure),
        stop=stop_after_attempt(attempts or settings.NETWORK_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, max=5),
        reraise=True,
    )

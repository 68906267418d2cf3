"""Модель лота"""
from sqlalchemy import Column, BigInteger, String, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from database.connection import Base, BigIntId


class LotStatus(str, enum.Enum):
    """Статус лота

    Значения пишутся в базу как есть и читаются всеми экранами и выгрузками,
    поэтому написание менять нельзя.
    """
    PENDING = "Pending"  # Загружен, ждет одобрения
    APPROVED = "Approved"  # Одобрен, торги еще не начались
    ACTIVE = "Active"  # Идут торги
    CLOSED = "Closed"  # Торги завершились по расписанию
    EARLY_CLOSED = "Early Closed"  # Закрыт оператором досрочно


class Lot(Base):
    """Модель лота (партии машин)"""
    __tablename__ = "lots"

    id = Column(BigIntId, primary_key=True, index=True)
    lot_number = Column(String(100), unique=True, nullable=False, index=True)
    approved = Column(Boolean, default=False, nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(BigInteger, nullable=True)  # telegram_id оператора
    early_closed = Column(Boolean, default=False, nullable=False)
    early_closed_at = Column(DateTime(timezone=True), nullable=True)
    early_closed_by = Column(BigInteger, nullable=True)
    bidding_start_date = Column(DateTime(timezone=True), nullable=True)
    bidding_end_date = Column(DateTime(timezone=True), nullable=True, index=True)
    # Кэш результата resolve_lot_status, не самостоятельный источник истины
    status = Column(String(50), default=LotStatus.PENDING.value, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    # Связи
    cars = relationship(
        "Car",
        back_populates="lot",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

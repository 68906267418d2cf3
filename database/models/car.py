"""Модель машины"""
from sqlalchemy import Column, BigInteger, String, DateTime, ForeignKey, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from database.connection import Base, BigIntId


class CarStatus(str, enum.Enum):
    """Публичный статус машины"""
    UPCOMING = "Upcoming"
    ACTIVE = "Active"
    CLOSED = "Closed"


class Car(Base):
    """Модель машины в лоте"""
    __tablename__ = "cars"

    id = Column(BigIntId, primary_key=True, index=True)
    lot_id = Column(BigInteger, ForeignKey("lots.id", ondelete="CASCADE"), nullable=False, index=True)
    sr_number = Column(String(50), nullable=True)  # Порядковый номер в файле загрузки
    reg_no = Column(String(50), nullable=True)
    make_model = Column(String(255), nullable=False)
    # Окно торгов дублирует окно лота
    bidding_start_date = Column(DateTime(timezone=True), nullable=True)
    bidding_end_date = Column(DateTime(timezone=True), nullable=True)
    bidding_enabled = Column(Boolean, default=False, nullable=False)
    # Машина снова открыта вручную и живет по собственному окну
    is_active = Column(Boolean, default=False, nullable=False)
    status = Column(String(50), default=CarStatus.UPCOMING.value, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    # Связи
    lot = relationship("Lot", back_populates="cars")
    bids = relationship(
        "Bid",
        back_populates="car",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Bid.created_at.desc()",
    )

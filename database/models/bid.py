"""Модель ставки"""
from sqlalchemy import Column, BigInteger, Numeric, DateTime, ForeignKey, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.connection import Base, BigIntId


class Bid(Base):
    """Модель ставки на машину

    В таблице может оказаться несколько строк на пару (машина, участник);
    действующей считается только самая большая.
    """
    __tablename__ = "bids"

    id = Column(BigIntId, primary_key=True, index=True)
    car_id = Column(BigInteger, ForeignKey("cars.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)  # Сумма ставки в AED
    is_winner = Column(Boolean, default=False, nullable=False)  # Не больше одного на машину
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    # Связи
    car = relationship("Car", back_populates="bids")
    user = relationship("User", backref="bids")

"""Модель пользователя"""
from sqlalchemy import Column, BigInteger, String, DateTime, Boolean
from sqlalchemy.sql import func
from database.connection import Base, BigIntId


class User(Base):
    """Модель пользователя Telegram"""
    __tablename__ = "users"

    id = Column(BigIntId, primary_key=True, index=True)
    telegram_id = Column(BigInteger, unique=True, nullable=False, index=True)
    username = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    is_approved = Column(Boolean, default=False, nullable=False)  # Допущен к торгам
    is_business = Column(Boolean, default=False, nullable=False)  # Просматривает итоги и выбирает победителей
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

"""Модели базы данных"""
from .user import User
from .lot import Lot, LotStatus
from .car import Car, CarStatus
from .bid import Bid

__all__ = [
    "User",
    "Lot",
    "LotStatus",
    "Car",
    "CarStatus",
    "Bid",
]

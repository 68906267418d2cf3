"""Клавиатуры бота"""
from .main import get_main_keyboard
from .admin import get_operator_keyboard
from .auction import get_lots_keyboard, get_cars_keyboard, get_car_keyboard

__all__ = [
    "get_main_keyboard",
    "get_operator_keyboard",
    "get_lots_keyboard",
    "get_cars_keyboard",
    "get_car_keyboard",
]

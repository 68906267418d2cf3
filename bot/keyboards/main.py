"""Основные клавиатуры"""
from aiogram.types import ReplyKeyboardMarkup, KeyboardButton


def get_main_keyboard() -> ReplyKeyboardMarkup:
    """Главная клавиатура участника торгов"""
    keyboard = [
        [KeyboardButton(text="🚗 Торги")],
        [KeyboardButton(text="💰 Мои ставки")],
        [KeyboardButton(text="🆔 Узнать свой ID")]
    ]
    return ReplyKeyboardMarkup(
        keyboard=keyboard,
        resize_keyboard=True
    )

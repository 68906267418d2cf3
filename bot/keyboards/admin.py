"""Клавиатуры для операторов"""
from aiogram.types import ReplyKeyboardMarkup, KeyboardButton


def get_operator_keyboard() -> ReplyKeyboardMarkup:
    """Клавиатура оператора (кнопки участника + управление лотами)"""
    keyboard = [
        [KeyboardButton(text="🚗 Торги")],
        [KeyboardButton(text="🆔 Узнать свой ID")],
        [KeyboardButton(text="📦 Лоты")],  # Список лотов со статусами
        [KeyboardButton(text="📋 Панель оператора")]
    ]
    return ReplyKeyboardMarkup(
        keyboard=keyboard,
        resize_keyboard=True
    )

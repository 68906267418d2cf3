"""Клавиатуры для торгов"""
from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder


def get_lots_keyboard(lots) -> InlineKeyboardMarkup:
    """Список лотов"""
    builder = InlineKeyboardBuilder()
    for lot in lots:
        builder.add(InlineKeyboardButton(
            text=f"Лот {lot.lot_number} ({lot.status})",
            callback_data=f"lot:cars:{lot.id}"
        ))
    builder.adjust(1)
    return builder.as_markup()


def get_cars_keyboard(cars) -> InlineKeyboardMarkup:
    """Машины лота"""
    builder = InlineKeyboardBuilder()
    for car in cars:
        builder.add(InlineKeyboardButton(
            text=f"{car.make_model} ({car.status})",
            callback_data=f"car:show:{car.id}"
        ))
    builder.adjust(1)
    return builder.as_markup()


def get_car_keyboard(car_id: int, can_bid: bool = True) -> InlineKeyboardMarkup:
    """Клавиатура карточки машины"""
    builder = InlineKeyboardBuilder()
    if can_bid:
        builder.add(InlineKeyboardButton(
            text="💰 Сделать ставку",
            callback_data=f"bid:custom:{car_id}"
        ))
    builder.add(InlineKeyboardButton(
        text="🔄 Обновить",
        callback_data=f"car:show:{car_id}"
    ))
    builder.adjust(1)
    return builder.as_markup()

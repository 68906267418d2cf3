"""Обработчики торгов для участников"""
from decimal import Decimal

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from bot.keyboards.auction import get_car_keyboard, get_cars_keyboard, get_lots_keyboard
from database.models.car import CarStatus
from services.bid import (
    check_biddable,
    get_car_with_lot,
    get_ranked_bids,
    get_user_bids,
    place_bid,
    withdraw_bid,
)
from services.clock import Clock
from services.errors import AuctionError, BiddingUnavailable
from services.lot import get_lot, get_lot_cars, list_lots
from services.lot_status import EARLY_CLOSABLE_STATUSES, resolve_stored_car_status, resolve_stored_lot_status
from services.user import get_or_create_user

router = Router()


class BidState(StatesGroup):
    """Состояния для ввода ставки"""
    waiting_amount = State()


def format_amount(amount) -> str:
    """Сумма в дирхамах: 'AED 12,500.00'"""
    return f"AED {Decimal(amount):,.2f}"


async def get_car_text(session: AsyncSession, car, lot, clock: Clock, user_id: int = None) -> str:
    """Карточка машины: статус, окно торгов, лучшая ставка и ставка участника"""
    status = resolve_stored_car_status(car, lot, clock.now())
    ranking = await get_ranked_bids(session, car.id)

    text_parts = [
        f"🚗 <b>{car.make_model}</b>",
        f"Лот: {lot.lot_number}",
    ]
    if car.sr_number:
        text_parts.append(f"SR: {car.sr_number}")
    if car.reg_no:
        text_parts.append(f"Рег. номер: {car.reg_no}")
    text_parts.append(f"Статус: {status.value}")
    start = car.bidding_start_date or lot.bidding_start_date
    end = car.bidding_end_date or lot.bidding_end_date
    text_parts.append(f"Торги: {clock.format_display(start)} - {clock.format_display(end)}")
    text_parts.append(f"👥 Участников: {len(ranking)}")
    if ranking:
        text_parts.append(f"⚡️ Топовая ставка: {format_amount(ranking[0].amount)}")

    if user_id is not None:
        own = next((ranked for ranked in ranking if ranked.user_id == user_id), None)
        if own:
            text_parts.append(f"Ваша ставка: {format_amount(own.amount)} (место {own.rank})")

    return "\n".join(text_parts)


def _can_bid(car, lot, clock: Clock) -> bool:
    try:
        check_biddable(car, lot, clock)
    except BiddingUnavailable:
        return False
    return True


@router.message(F.text == "🚗 Торги")
@router.message(Command("auctions"))
async def show_open_lots(message: Message, session: AsyncSession, clock: Clock):
    """Показать одобренные и идущие лоты"""
    now = clock.now()
    lots = [
        lot for lot in await list_lots(session)
        if resolve_stored_lot_status(lot, now) in EARLY_CLOSABLE_STATUSES
    ]
    if not lots:
        await message.answer("Сейчас нет открытых лотов")
        return
    await message.answer("📦 Открытые лоты:", reply_markup=get_lots_keyboard(lots))


@router.callback_query(F.data.startswith("lot:cars:"))
async def show_lot_cars(callback: CallbackQuery, session: AsyncSession, clock: Clock):
    """Машины выбранного лота"""
    lot_id = int(callback.data.split(":")[2])
    try:
        lot = await get_lot(session, lot_id)
    except AuctionError as e:
        await callback.answer(str(e), show_alert=True)
        return

    cars = await get_lot_cars(session, lot_id)
    status = resolve_stored_lot_status(lot, clock.now())
    await callback.message.answer(
        f"Лот {lot.lot_number} ({status.value})\n"
        f"Торги: {clock.format_display(lot.bidding_start_date)} - {clock.format_display(lot.bidding_end_date)}",
        reply_markup=get_cars_keyboard(cars) if cars else None
    )
    await callback.answer()


async def _send_car(message: Message, session: AsyncSession, clock: Clock, car_id: int, telegram_user):
    row = await get_car_with_lot(session, car_id)
    if not row:
        await message.answer("Машина не найдена")
        return
    car, lot = row

    user = await get_or_create_user(
        session,
        telegram_user.id,
        telegram_user.username,
        telegram_user.first_name,
        telegram_user.last_name
    )
    text = await get_car_text(session, car, lot, clock, user_id=user.id)
    await message.answer(text, reply_markup=get_car_keyboard(car.id, _can_bid(car, lot, clock)))


@router.message(Command("car"))
async def cmd_car(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Карточка машины: /car <id>"""
    if not command.args or not command.args.strip().isdigit():
        await message.answer("Использование: /car <id машины>")
        return
    await _send_car(message, session, clock, int(command.args.strip()), message.from_user)


@router.callback_query(F.data.startswith("car:show:"))
async def show_car(callback: CallbackQuery, session: AsyncSession, clock: Clock):
    """Карточка машины из списка"""
    car_id = int(callback.data.split(":")[2])
    await _send_car(callback.message, session, clock, car_id, callback.from_user)
    await callback.answer()


async def _place_bid(message: Message, session: AsyncSession, clock: Clock, car_id: int, amount: str, telegram_user):
    user = await get_or_create_user(
        session,
        telegram_user.id,
        telegram_user.username,
        telegram_user.first_name,
        telegram_user.last_name
    )
    try:
        bid = await place_bid(session, car_id, user.id, amount, clock)
    except AuctionError as e:
        await message.answer(f"❌ {e}")
        return False

    ranking = await get_ranked_bids(session, car_id)
    own = next((ranked for ranked in ranking if ranked.user_id == user.id), None)
    text = f"✅ Ваша ставка {format_amount(bid.amount)} принята."
    if own:
        text += f"\nМесто в рейтинге: {own.rank} из {len(ranking)}"
    await message.answer(text)
    return True


@router.message(Command("bid"))
async def cmd_bid(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Сделать ставку: /bid <id машины> <сумма>"""
    args = (command.args or "").split()
    if len(args) != 2 or not args[0].isdigit():
        await message.answer("Использование: /bid <id машины> <сумма>")
        return
    await _place_bid(message, session, clock, int(args[0]), args[1], message.from_user)


@router.callback_query(F.data.startswith("bid:custom:"))
async def bid_custom_amount(callback: CallbackQuery, state: FSMContext):
    """Запросить ввод суммы"""
    car_id = int(callback.data.split(":")[2])

    await state.set_state(BidState.waiting_amount)
    await state.update_data(car_id=car_id)

    await callback.message.answer("Введите сумму ставки в AED (только число):")
    await callback.answer()


@router.message(BidState.waiting_amount)
async def process_bid_amount(message: Message, session: AsyncSession, state: FSMContext, clock: Clock):
    """Обработка введенной суммы"""
    data = await state.get_data()
    car_id = data.get("car_id")
    if not car_id:
        await message.answer("Ошибка: не найдена машина")
        await state.clear()
        return

    if await _place_bid(message, session, clock, car_id, message.text or "", message.from_user):
        await state.clear()


@router.message(Command("withdraw"))
async def cmd_withdraw(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Отозвать ставку: /withdraw <id машины>"""
    if not command.args or not command.args.strip().isdigit():
        await message.answer("Использование: /withdraw <id машины>")
        return
    car_id = int(command.args.strip())

    user = await get_or_create_user(
        session,
        message.from_user.id,
        message.from_user.username,
        message.from_user.first_name,
        message.from_user.last_name
    )
    own = next(
        (ranked for ranked in await get_ranked_bids(session, car_id) if ranked.user_id == user.id),
        None
    )
    if not own:
        await message.answer("У вас нет ставки на эту машину")
        return

    try:
        await withdraw_bid(session, own.bid_id, user.id, clock)
    except AuctionError as e:
        await message.answer(f"❌ {e}")
        return
    await message.answer("✅ Ставка отозвана")


@router.message(F.text == "💰 Мои ставки")
async def show_my_bids(message: Message, session: AsyncSession):
    """Ставки участника"""
    user = await get_or_create_user(
        session,
        message.from_user.id,
        message.from_user.username,
        message.from_user.first_name,
        message.from_user.last_name
    )
    rows = await get_user_bids(session, user.id)
    if not rows:
        await message.answer("У вас пока нет ставок")
        return

    lines = ["💰 Ваши ставки:\n"]
    for bid, car in rows:
        line = f"• {car.make_model} (id {car.id}): {format_amount(bid.amount)}"
        if bid.is_winner:
            line += " 🏆"
        elif car.status == CarStatus.CLOSED.value:
            line += " (торги завершены)"
        lines.append(line)
    await message.answer("\n".join(lines))

"""Обработчики для операторов"""
import logging

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from sqlalchemy.ext.asyncio import AsyncSession

from bot.handlers.auction import format_amount
from services.clock import Clock
from services.errors import AuctionError, PartialCascadeFailure, PermissionDenied, TransientNetworkFailure
from services.lot import (
    approve_lot,
    create_lot,
    delete_lot,
    early_close_lot,
    get_lot_by_number,
    get_lot_cars,
    list_lots,
    reschedule_lot,
    set_car_bidding,
)
from services.lot_status import resolve_stored_car_status, resolve_stored_lot_status
from services.scheduler import refresh_all_lot_statuses, run_store_sweeps
from services.user import is_operator, set_bidder_approval
from services.winner import assign_lot_winners, get_lot_results, set_manual_winner

router = Router()
logger = logging.getLogger(__name__)

HELP_TEXT = (
    "📋 Панель оператора\n\n"
    "Даты указываются в местном времени (Дубай) в формате YYYY-MM-DDTHH:MM.\n\n"
    "/lots - Список лотов\n"
    "/lot &lt;номер&gt; - Лот и его машины\n"
    "/newlot &lt;номер&gt; - Создать лот, машины со следующих строк: SR | рег. номер | марка и модель\n"
    "/approve &lt;номер&gt; &lt;начало&gt; &lt;конец&gt; - Одобрить лот\n"
    "/reschedule &lt;номер&gt; &lt;начало&gt; &lt;конец&gt; [новый номер] - Перенести торги\n"
    "/close &lt;номер&gt; - Закрыть досрочно\n"
    "/delete &lt;номер&gt; - Удалить лот\n"
    "/results &lt;номер&gt; - Рейтинг ставок и победители\n"
    "/winner &lt;id машины&gt; &lt;id ставки&gt; - Назначить победителя\n"
    "/autowinners &lt;номер&gt; [force] - Победители по первым местам\n"
    "/carbids &lt;id машин через запятую&gt; on|off [&lt;начало&gt; &lt;конец&gt;] - Ставки по машинам, с окном - открыть машину заново\n"
    "/refresh - Пересчитать статусы\n"
    "/bidder &lt;telegram id&gt; [off] - Допуск участника к торгам"
)


def _error_text(e: AuctionError) -> str:
    if isinstance(e, PartialCascadeFailure):
        return (
            f"⚠️ {e}\n\n"
            "Лот сохранен, статусы машин будут исправлены при следующей сверке. "
            "Можно повторить действие."
        )
    if isinstance(e, PermissionDenied):
        return f"⛔ Нет доступа: {e}"
    if isinstance(e, TransientNetworkFailure):
        return f"📡 База недоступна, попробуйте позже: {e}"
    return f"❌ {e}"


async def _check_operator(message: Message, session: AsyncSession) -> bool:
    if not await is_operator(session, message.from_user.id):
        await message.answer("У вас нет прав оператора")
        return False
    return True


async def _find_lot(message: Message, session: AsyncSession, lot_number: str):
    lot = await get_lot_by_number(session, lot_number)
    if not lot:
        await message.answer(f"Лот {lot_number} не найден")
    return lot


def _lot_line(lot, clock: Clock) -> str:
    status = resolve_stored_lot_status(lot, clock.now())
    return (
        f"• <b>{lot.lot_number}</b> - {status.value}\n"
        f"  {clock.format_display(lot.bidding_start_date)} - {clock.format_display(lot.bidding_end_date)}"
    )


@router.message(F.text == "📋 Панель оператора")
@router.message(Command("admin"))
async def cmd_admin(message: Message, session: AsyncSession):
    """Панель оператора"""
    if not await _check_operator(message, session):
        return
    await message.answer(HELP_TEXT)


@router.message(F.text == "📦 Лоты")
@router.message(Command("lots"))
async def cmd_lots(message: Message, session: AsyncSession, clock: Clock):
    """Список лотов со статусами"""
    if not await _check_operator(message, session):
        return

    lots = await list_lots(session)
    if not lots:
        await message.answer("Лотов пока нет")
        return
    await message.answer("📦 Лоты:\n\n" + "\n".join(_lot_line(lot, clock) for lot in lots))


@router.message(Command("lot"))
async def cmd_lot(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Лот и его машины: /lot <номер>"""
    if not await _check_operator(message, session):
        return
    if not command.args:
        await message.answer("Использование: /lot &lt;номер&gt;")
        return

    lot = await _find_lot(message, session, command.args.strip())
    if not lot:
        return

    now = clock.now()
    text_parts = [_lot_line(lot, clock)]
    if lot.early_closed:
        text_parts.append(f"Закрыт досрочно: {clock.format_display(lot.early_closed_at)}")
    text_parts.append("")
    for car in await get_lot_cars(session, lot.id):
        status = resolve_stored_car_status(car, lot, now)
        line = f"🚗 {car.id}: {car.make_model} - {status.value}"
        if not car.bidding_enabled:
            line += " (ставки отключены)"
        text_parts.append(line)
    await message.answer("\n".join(text_parts))


@router.message(Command("newlot"))
async def cmd_new_lot(message: Message, command: CommandObject, session: AsyncSession):
    """Создать лот: /newlot <номер>, машины построчно"""
    if not await _check_operator(message, session):
        return

    lines = (command.args or "").splitlines()
    if not lines or not lines[0].strip():
        await message.answer(
            "Использование:\n/newlot &lt;номер&gt;\nSR | рег. номер | марка и модель\n..."
        )
        return

    cars = []
    for line in lines[1:]:
        if not line.strip():
            continue
        parts = [part.strip() for part in line.split("|")]
        if len(parts) != 3 or not parts[2]:
            await message.answer(f"Неверная строка машины: {line}")
            return
        cars.append({
            "sr_number": parts[0] or None,
            "reg_no": parts[1] or None,
            "make_model": parts[2],
        })

    try:
        lot = await create_lot(session, lines[0], cars)
    except AuctionError as e:
        await message.answer(_error_text(e))
        return
    await message.answer(f"✅ Лот {lot.lot_number} создан, машин: {len(cars)}")


@router.message(Command("approve"))
async def cmd_approve(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Одобрить лот: /approve <номер> <начало> <конец>"""
    if not await _check_operator(message, session):
        return
    args = (command.args or "").split()
    if len(args) != 3:
        await message.answer(
            "Использование: /approve &lt;номер&gt; &lt;начало&gt; &lt;конец&gt;\n"
            f"Например: /approve 101 {clock.local_input_now(60)} {clock.local_input_now(60 * 24)}"
        )
        return

    lot = await _find_lot(message, session, args[0])
    if not lot:
        return
    try:
        lot = await approve_lot(
            session, lot.id, args[1], args[2],
            approved_by=message.from_user.id,
            clock=clock
        )
    except AuctionError as e:
        await message.answer(_error_text(e))
        return
    await message.answer(f"✅ Лот одобрен\n\n{_lot_line(lot, clock)}")


@router.message(Command("reschedule"))
async def cmd_reschedule(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Перенести торги: /reschedule <номер> <начало> <конец> [новый номер]"""
    if not await _check_operator(message, session):
        return
    args = (command.args or "").split()
    if len(args) not in (3, 4):
        await message.answer(
            "Использование: /reschedule &lt;номер&gt; &lt;начало&gt; &lt;конец&gt; [новый номер]"
        )
        return

    lot = await _find_lot(message, session, args[0])
    if not lot:
        return
    try:
        lot = await reschedule_lot(
            session, lot.id, args[1], args[2],
            lot_number=args[3] if len(args) == 4 else None,
            clock=clock
        )
    except AuctionError as e:
        await message.answer(_error_text(e))
        return
    await message.answer(f"✅ Даты торгов изменены\n\n{_lot_line(lot, clock)}")


@router.message(Command("close"))
async def cmd_close(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Досрочно закрыть лот: /close <номер>"""
    if not await _check_operator(message, session):
        return
    if not command.args:
        await message.answer("Использование: /close &lt;номер&gt;")
        return

    lot = await _find_lot(message, session, command.args.strip())
    if not lot:
        return
    try:
        lot = await early_close_lot(session, lot.id, closed_by=message.from_user.id, clock=clock)
    except AuctionError as e:
        await message.answer(_error_text(e))
        return
    await message.answer(f"🔒 Лот {lot.lot_number} закрыт досрочно, торги по машинам остановлены")


@router.message(Command("delete"))
async def cmd_delete(message: Message, command: CommandObject, session: AsyncSession):
    """Удалить лот: /delete <номер>"""
    if not await _check_operator(message, session):
        return
    if not command.args:
        await message.answer("Использование: /delete &lt;номер&gt;")
        return

    lot = await _find_lot(message, session, command.args.strip())
    if not lot:
        return
    lot_number = lot.lot_number
    try:
        await delete_lot(session, lot.id)
    except AuctionError as e:
        await message.answer(_error_text(e))
        return
    await message.answer(f"🗑 Лот {lot_number} удален вместе с машинами и ставками")


@router.message(Command("results"))
async def cmd_results(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Рейтинг ставок и победители: /results <номер>"""
    if not await _check_operator(message, session):
        return
    if not command.args:
        await message.answer("Использование: /results &lt;номер&gt;")
        return

    lot = await _find_lot(message, session, command.args.strip())
    if not lot:
        return

    results = await get_lot_results(session, lot.id)
    if not results:
        await message.answer(f"В лоте {lot.lot_number} нет машин")
        return

    text_parts = [_lot_line(lot, clock), ""]
    for car_result in results:
        car = car_result.car
        text_parts.append(f"🚗 {car.id}: {car.make_model}")
        if not car_result.ranking:
            text_parts.append("  ставок нет")
        for ranked in car_result.ranking[:5]:
            mark = " 🏆" if ranked.is_winner else ""
            text_parts.append(
                f"  {ranked.rank}. ставка {ranked.bid_id}, участник {ranked.user_id}: "
                f"{format_amount(ranked.amount)}{mark}"
            )
        winner = car_result.winner_bid
        if winner and not any(ranked.bid_id == winner.id for ranked in car_result.ranking):
            text_parts.append(f"  🏆 победитель: ставка {winner.id} ({format_amount(winner.amount)})")
        text_parts.append("")
    await message.answer("\n".join(text_parts))


@router.message(Command("winner"))
async def cmd_winner(message: Message, command: CommandObject, session: AsyncSession):
    """Назначить победителя: /winner <id машины> <id ставки>"""
    if not await _check_operator(message, session):
        return
    args = (command.args or "").split()
    if len(args) != 2 or not all(arg.isdigit() for arg in args):
        await message.answer("Использование: /winner &lt;id машины&gt; &lt;id ставки&gt;")
        return

    try:
        bid = await set_manual_winner(session, int(args[0]), int(args[1]))
    except AuctionError as e:
        await message.answer(_error_text(e))
        return
    await message.answer(
        f"🏆 Победитель по машине {bid.car_id}: ставка {bid.id} ({format_amount(bid.amount)})"
    )


@router.message(Command("autowinners"))
async def cmd_auto_winners(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Победители по первым местам рейтинга: /autowinners <номер> [force]"""
    if not await _check_operator(message, session):
        return
    args = (command.args or "").split()
    if not args:
        await message.answer("Использование: /autowinners &lt;номер&gt; [force]")
        return

    lot = await _find_lot(message, session, args[0])
    if not lot:
        return
    try:
        winners = await assign_lot_winners(
            session, lot.id,
            overwrite=len(args) > 1 and args[1].lower() == "force",
            clock=clock
        )
    except AuctionError as e:
        await message.answer(_error_text(e))
        return

    assigned = sum(1 for bid in winners.values() if bid is not None)
    await message.answer(
        f"🏆 Лот {lot.lot_number}: победители назначены по {assigned} из {len(winners)} машин"
    )


@router.message(Command("refresh"))
async def cmd_refresh(message: Message, session: AsyncSession, clock: Clock):
    """Пересчитать статусы всех лотов"""
    if not await _check_operator(message, session):
        return

    await run_store_sweeps(session)
    failures = await refresh_all_lot_statuses(session, clock)
    if failures:
        await message.answer("\n\n".join(_error_text(failure) for failure in failures))
        return
    await message.answer("🔄 Статусы лотов и машин пересчитаны")


@router.message(Command("bidder"))
async def cmd_bidder(message: Message, command: CommandObject, session: AsyncSession):
    """Допуск участника к торгам: /bidder <telegram id> [off]"""
    if not await _check_operator(message, session):
        return
    args = (command.args or "").split()
    if not args or not args[0].isdigit():
        await message.answer("Использование: /bidder &lt;telegram id&gt; [off]")
        return

    approved = not (len(args) > 1 and args[1].lower() == "off")
    try:
        user = await set_bidder_approval(session, int(args[0]), approved)
    except AuctionError as e:
        await message.answer(_error_text(e))
        return

    logger.info(f"Оператор {message.from_user.id}: участник {user.telegram_id} допуск={approved}")
    if approved:
        await message.answer(f"✅ Участник {user.telegram_id} допущен к торгам")
    else:
        await message.answer(f"🚫 Участник {user.telegram_id} отстранен от торгов")


@router.message(Command("carbids"))
async def cmd_car_bids(message: Message, command: CommandObject, session: AsyncSession, clock: Clock):
    """Ставки по машинам: /carbids <id,id,...> on|off [<начало> <конец>]"""
    if not await _check_operator(message, session):
        return
    args = (command.args or "").split()
    usage = "Использование: /carbids &lt;id,id,...&gt; on|off [&lt;начало&gt; &lt;конец&gt;]"
    if len(args) not in (2, 4) or args[1].lower() not in ("on", "off"):
        await message.answer(usage)
        return

    car_ids = [part.strip() for part in args[0].split(",") if part.strip()]
    if not car_ids or not all(part.isdigit() for part in car_ids):
        await message.answer(usage)
        return

    enabled = args[1].lower() == "on"
    start_local, end_local = (args[2], args[3]) if len(args) == 4 else (None, None)
    try:
        statuses = await set_car_bidding(
            session, [int(part) for part in car_ids], enabled,
            start_local=start_local, end_local=end_local, clock=clock
        )
    except AuctionError as e:
        await message.answer(_error_text(e))
        return

    logger.info(f"Оператор {message.from_user.id}: ставки по машинам {car_ids} включены={enabled}")
    lines = [f"🚗 {car_id}: {status.value}" for car_id, status in statuses.items()]
    title = "✅ Ставки включены" if enabled else "🚫 Ставки выключены"
    await message.answer(title + "\n\n" + "\n".join(lines))

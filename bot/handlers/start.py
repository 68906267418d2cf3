"""Обработчики команды /start"""
from aiogram import Router, F
from aiogram.types import Message, ReplyKeyboardMarkup, KeyboardButton, ReplyKeyboardRemove
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from sqlalchemy.ext.asyncio import AsyncSession
from bot.keyboards.main import get_main_keyboard
from bot.keyboards.admin import get_operator_keyboard
from services.user import get_or_create_user, is_operator

router = Router()


class StartState(StatesGroup):
    """Состояния для регистрации при /start"""
    waiting_contact = State()


WELCOME_TEXT = (
    "👋 Добро пожаловать на аукцион автомобилей!\n\n"
    "Выберите раздел:"
)


async def _send_main_menu(message: Message, session: AsyncSession, telegram_id: int):
    if await is_operator(session, telegram_id):
        await message.answer(WELCOME_TEXT, reply_markup=get_operator_keyboard())
    else:
        await message.answer(WELCOME_TEXT, reply_markup=get_main_keyboard())


@router.message(Command("start"))
async def cmd_start(message: Message, session: AsyncSession, state: FSMContext):
    """Обработчик команды /start"""
    user = await get_or_create_user(
        session,
        message.from_user.id,
        message.from_user.username,
        message.from_user.first_name,
        message.from_user.last_name
    )

    # Проверяем наличие телефона
    if not user.phone:
        await state.set_state(StartState.waiting_contact)

        contact_keyboard = ReplyKeyboardMarkup(
            keyboard=[[KeyboardButton(text="📱 Поделиться контактом", request_contact=True)]],
            resize_keyboard=True,
            one_time_keyboard=True
        )

        await message.answer(
            "Чтобы участвовать в торгах, подключите свой номер телефона",
            reply_markup=contact_keyboard
        )
        return

    await _send_main_menu(message, session, message.from_user.id)


@router.message(StartState.waiting_contact, F.contact)
async def process_start_contact(message: Message, session: AsyncSession, state: FSMContext):
    """Обработка контакта при команде /start"""
    user = await get_or_create_user(
        session,
        message.from_user.id,
        message.from_user.username,
        message.from_user.first_name,
        message.from_user.last_name
    )

    if message.contact.phone_number:
        user.phone = message.contact.phone_number
        await session.commit()

    await message.answer(
        "✅ Регистрация завершена!\n\n"
        "Ставки станут доступны после проверки вашего профиля оператором.",
        reply_markup=ReplyKeyboardRemove()
    )
    await state.clear()
    await _send_main_menu(message, session, message.from_user.id)


@router.message(F.text == "🆔 Узнать свой ID")
async def show_my_id(message: Message):
    """Показать Telegram ID (нужен оператору для допуска к торгам)"""
    await message.answer(f"Ваш ID: <code>{message.from_user.id}</code>")

"""
Обработчики команд и сообщений пользователей
"""
import logging
from typing import Optional

from aiogram import Router, F
from aiogram.filters import Command
from aiogram.types import Message, CallbackQuery, ReplyKeyboardRemove
from aiogram.fsm.context import FSMContext

from config import settings
from database.models import Boat, Reservation
from database.repository import BoatRepository, CustomTourRepository, ReservationRepository
from keyboards.keyboards import (
    MENU_BOOK, MENU_LOOKUP, MENU_MY, STATUS_LABELS,
    get_main_menu_keyboard, get_boats_keyboard, get_tour_types_keyboard, get_count_keyboard,
    get_calendar_keyboard, get_slots_keyboard, get_slot_confirmation_keyboard,
    get_seats_keyboard, get_phone_keyboard, get_skip_email_keyboard,
    get_confirmation_keyboard, get_reservations_keyboard, get_cancel_keyboard
)
from states.booking_flow import (
    CONTACT, DATE, PARTY_SIZE, SEATS, SLOT, TOUR_TYPE, BookingDraft, BookingFlow
)
from states.booking_states import BookingStates, LookupStates
from utils.availability import fullness_for_all_slots, fullness_for_month, group_by_date
from utils.errors import (
    BookingError, CapacityConflictError, ConfigurationAbsentError,
    ConfirmationRequiredError, StoreUnavailableError
)
from utils.reservation_service import calculate_total_price, check_phone_allowed, submit_reservation
from utils.time_utils import (
    format_date, local_today, month_dates, months_between, shift_month, to_date_str
)
from utils.tour_policy import (
    BAIT_CONFIRMATION, available_tour_types, can_select_date, resolve_tour_type
)

logger = logging.getLogger(__name__)
router = Router()

STALE_KEYBOARD = "Эта клавиатура устарела, показываю актуальную"


def format_reservation(reservation: Reservation, boat: Optional[Boat] = None) -> str:
    """Карточка брони"""
    boat_name = boat.name if boat else f"Лодка #{reservation.boat_id}"
    seats = ", ".join(map(str, reservation.selected_seats))
    people = f"{reservation.total_people}"
    if reservation.baby_count:
        people += f" (в т.ч. младенцев: {reservation.baby_count})"
    payment = "получена" if reservation.payment_status == 'received' else "ожидается"

    return (
        f"📋 Бронь {reservation.reservation_number}\n\n"
        f"⛵ {boat_name}\n"
        f"📅 {format_date(reservation.date)}\n"
        f"🕐 {reservation.time_slot_display}\n"
        f"💺 Места: {seats}\n"
        f"👥 Человек: {people}\n"
        f"💰 Сумма: {reservation.total_price:g} TRY (оплата {payment})\n"
        f"📌 Статус: {STATUS_LABELS.get(reservation.status, reservation.status)}"
    )


async def _load_flow(state: FSMContext) -> Optional[BookingFlow]:
    """Черновик из FSMContext"""
    data = await state.get_data()
    if 'draft' not in data:
        return None
    draft = BookingDraft.from_dict(data['draft'])
    boat = BoatRepository.get_boat_by_id(draft.boat_id)
    if boat is None:
        return None
    return BookingFlow(draft, boat)


async def _save_flow(state: FSMContext, flow: BookingFlow):
    await state.update_data(draft=flow.draft.to_dict())


async def _flow_or_restart(callback: CallbackQuery, state: FSMContext) -> Optional[BookingFlow]:
    flow = await _load_flow(state)
    if flow is None:
        await state.clear()
        await callback.answer("Сессия бронирования истекла, начните заново", show_alert=True)
    return flow


def _is_stale(flow: BookingFlow, revision: str) -> bool:
    return not revision.isdigit() or int(revision) != flow.draft.revision


@router.message(Command("start"))
async def cmd_start(message: Message, state: FSMContext):
    """Обработка команды /start"""
    await state.clear()

    is_admin = settings.is_admin(message.from_user.id)

    await message.answer(
        f"👋 Добро пожаловать в бот бронирования морских прогулок!\n\n"
        f"Здесь вы можете:\n"
        f"⛵ Забронировать место на лодке или всю лодку\n"
        f"📋 Посмотреть свои бронирования\n"
        f"🔎 Найти бронь по номеру\n\n"
        f"Выберите действие:",
        reply_markup=get_main_menu_keyboard(is_admin)
    )


# --- Экраны мастера ---

async def _show_boats(message: Message, edit: bool = True):
    boats = BoatRepository.get_active_boats()
    if not boats:
        text = "Сейчас нет доступных лодок. Загляните позже!"
        await (message.edit_text(text) if edit else message.answer(text))
        return

    text = "⛵ Выберите лодку:"
    markup = get_boats_keyboard(boats)
    if edit:
        await message.edit_text(text, reply_markup=markup)
    else:
        await message.answer(text, reply_markup=markup)


async def _show_tours(message: Message, state: FSMContext, flow: BookingFlow):
    tours = available_tour_types(CustomTourRepository.get_active_tours())
    await message.edit_text(
        f"⛵ {flow.boat.name}\n\n"
        f"Выберите тип тура:\n"
        f"👥 обычный - места выбираются поштучно\n"
        f"🔒 эксклюзивный - вся лодка только для вашей компании",
        reply_markup=get_tour_types_keyboard(tours)
    )
    await state.set_state(BookingStates.choosing_tour)


async def _show_adults(message: Message, state: FSMContext, flow: BookingFlow):
    await message.edit_text(
        "👤 Сколько взрослых?",
        reply_markup=get_count_keyboard('adults', 1, settings.MAX_ADULTS, flow.draft.revision)
    )
    await state.set_state(BookingStates.choosing_adults)


async def _show_children(message: Message, state: FSMContext, flow: BookingFlow):
    await message.edit_text(
        "🧒 Сколько детей (3-12 лет, 50% стоимости)?",
        reply_markup=get_count_keyboard('children', 0, settings.MAX_CHILDREN, flow.draft.revision)
    )
    await state.set_state(BookingStates.choosing_children)


async def _show_babies(message: Message, state: FSMContext, flow: BookingFlow):
    await message.edit_text(
        "👶 Сколько младенцев (до 3 лет, без отдельного места и бесплатно)?",
        reply_markup=get_count_keyboard('babies', 0, settings.MAX_BABIES, flow.draft.revision)
    )
    await state.set_state(BookingStates.choosing_babies)


async def _show_calendar(message: Message, state: FSMContext, flow: BookingFlow,
                         year: int = None, month: int = None):
    """Календарь с заполненностью дней"""
    today = local_today()
    if year is None or month is None:
        data = await state.get_data()
        year = data.get('cal_year', today.year)
        month = data.get('cal_month', today.month)

    dates = month_dates(year, month)
    reservations = ReservationRepository.get_by_date_range(flow.boat.id, dates[0], dates[-1])
    fullness = fullness_for_month(flow.boat, year, month, reservations)
    by_date = group_by_date(reservations)
    selectable = [
        date for date in fullness
        if can_select_date(date, flow.boat, by_date.get(date, []), flow.tour, today=today)
    ]

    offset = months_between(today, year, month)
    await state.update_data(cal_year=year, cal_month=month)
    await message.edit_text(
        f"📅 {flow.draft.tour_name}\n"
        f"Выберите дату:\n🟢 свободно  🟡 есть места  🔴 недоступно",
        reply_markup=get_calendar_keyboard(
            year, month, fullness, selectable, flow.draft.revision,
            can_prev=offset > 0,
            can_next=offset < settings.CALENDAR_MONTHS_AHEAD
        )
    )
    await state.set_state(BookingStates.choosing_date)


async def _show_slots(message: Message, state: FSMContext, flow: BookingFlow):
    """Слоты выбранного дня с процентом заполненности"""
    slots = flow.boat.time_slots_for(flow.draft.date)
    reservations = ReservationRepository.get_active_by_date(flow.boat.id, flow.draft.date)
    fullness = fullness_for_all_slots(flow.boat, flow.draft.date, reservations)
    selectable = flow.selectable_slots(reservations)

    await state.update_data(pending_slot=None, slot_confirmed=[])
    await message.edit_text(
        f"📅 {format_date(flow.draft.date)}\n"
        f"🕐 Выберите время выхода:",
        reply_markup=get_slots_keyboard(slots, fullness, selectable, flow.draft.revision)
    )
    await state.set_state(BookingStates.choosing_slot)


async def _show_seats(message: Message, state: FSMContext, flow: BookingFlow):
    await message.edit_text(
        f"💺 Выберите {flow.required_seats} мест "
        f"({format_date(flow.draft.date)}, {flow.draft.slot_display})",
        reply_markup=get_seats_keyboard(
            flow.boat, flow.draft.occupied, flow.draft.seats,
            flow.required_seats, flow.draft.revision
        )
    )
    await state.set_state(BookingStates.choosing_seats)


async def _ask_name(message: Message, state: FSMContext, flow: BookingFlow, edit: bool = True):
    seats = ", ".join(map(str, flow.draft.seats))
    text = (
        f"✅ {flow.draft.tour_name}, {format_date(flow.draft.date)}, {flow.draft.slot_display}\n"
        f"💺 Места: {seats}\n\n"
        f"✍️ Введите ваше имя:"
    )
    if edit:
        await message.edit_text(text, reply_markup=get_cancel_keyboard())
    else:
        await message.answer(text, reply_markup=get_cancel_keyboard())
    await state.set_state(BookingStates.entering_name)


async def _render_step(message: Message, state: FSMContext, flow: BookingFlow):
    """Показать экран текущего шага черновика"""
    step = flow.step
    if step == TOUR_TYPE:
        await _show_tours(message, state, flow)
    elif step == PARTY_SIZE:
        await _show_adults(message, state, flow)
    elif step == DATE:
        await _show_calendar(message, state, flow)
    elif step == SLOT:
        await _show_slots(message, state, flow)
    elif step == SEATS:
        await _show_seats(message, state, flow)
    elif step == CONTACT:
        await _ask_name(message, state, flow)


# --- Шаги мастера ---

@router.message(F.text == MENU_BOOK)
async def start_booking(message: Message, state: FSMContext):
    """Начало процесса бронирования"""
    await state.clear()
    try:
        await _show_boats(message, edit=False)
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return
    await state.set_state(BookingStates.choosing_boat)


@router.callback_query(F.data.startswith("boat:"), BookingStates.choosing_boat)
async def process_boat(callback: CallbackQuery, state: FSMContext):
    """Обработка выбора лодки"""
    boat_id = int(callback.data.split(":")[1])

    try:
        boat = BoatRepository.get_boat_by_id(boat_id)
        if boat is None or not boat.is_active:
            await callback.answer("Лодка недоступна", show_alert=True)
            return
        if not boat.time_slots and not boat.scheduled_time_slots:
            raise ConfigurationAbsentError("Для этой лодки пока не настроено расписание")

        flow = BookingFlow.start(boat)
        await _save_flow(state, flow)
        await _show_tours(callback.message, state, flow)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return
    await callback.answer()


@router.callback_query(F.data.startswith("tour:"), BookingStates.choosing_tour)
async def process_tour(callback: CallbackQuery, state: FSMContext):
    """Обработка выбора типа тура"""
    tour_id = callback.data.split(":", 1)[1]
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return

    try:
        tour = resolve_tour_type(tour_id, CustomTourRepository.get_active_tours())
        flow.choose_tour_type(tour)
        await _save_flow(state, flow)
        await _render_step(callback.message, state, flow)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return
    await callback.answer()


@router.callback_query(F.data.startswith("adults:"), BookingStates.choosing_adults)
async def process_adults(callback: CallbackQuery, state: FSMContext):
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return
    await state.update_data(adults=int(callback.data.split(":")[1]))
    await _show_children(callback.message, state, flow)
    await callback.answer()


@router.callback_query(F.data.startswith("children:"), BookingStates.choosing_children)
async def process_children(callback: CallbackQuery, state: FSMContext):
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return
    await state.update_data(children=int(callback.data.split(":")[1]))
    await _show_babies(callback.message, state, flow)
    await callback.answer()


@router.callback_query(F.data.startswith("babies:"), BookingStates.choosing_babies)
async def process_babies(callback: CallbackQuery, state: FSMContext):
    """Состав группы собран целиком"""
    babies = int(callback.data.split(":")[1])
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return
    data = await state.get_data()

    try:
        flow.set_party_size(data.get('adults', 0), data.get('children', 0), babies)
        await _save_flow(state, flow)
        await _show_calendar(callback.message, state, flow)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return
    await callback.answer()


@router.callback_query(F.data.startswith("cal:"), BookingStates.choosing_date)
async def process_calendar_page(callback: CallbackQuery, state: FSMContext):
    """Листание календаря"""
    _, year, month, delta = callback.data.split(":")
    year, month = shift_month(int(year), int(month), int(delta))
    offset = months_between(local_today(), year, month)
    if offset < 0 or offset > settings.CALENDAR_MONTHS_AHEAD:
        await callback.answer()
        return

    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return
    try:
        await _show_calendar(callback.message, state, flow, year, month)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return
    await callback.answer()


@router.callback_query(F.data == "day_blocked")
async def process_blocked_day(callback: CallbackQuery):
    await callback.answer("Эта дата недоступна для выбранного тура", show_alert=True)


@router.callback_query(F.data == "noop")
async def process_noop(callback: CallbackQuery):
    await callback.answer()


@router.callback_query(F.data.startswith("day:"), BookingStates.choosing_date)
async def process_date(callback: CallbackQuery, state: FSMContext):
    """Обработка выбора даты"""
    _, revision, date = callback.data.split(":")
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return

    try:
        if _is_stale(flow, revision):
            await _render_step(callback.message, state, flow)
            await callback.answer(STALE_KEYBOARD)
            return

        flow.select_date(date, ReservationRepository.get_active_by_date(flow.boat.id, date))
        await _save_flow(state, flow)
        await _show_slots(callback.message, state, flow)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return
    await callback.answer()


async def _try_select_slot(callback: CallbackQuery, state: FSMContext,
                           flow: BookingFlow, slot_id: str, confirmed: list):
    """
    Попытка выбрать слот. Если нужны подтверждения, показывается следующее
    по порядку, а слот запоминается до ответа пользователя.
    """
    reservations = ReservationRepository.get_active_by_date(flow.boat.id, flow.draft.date)
    try:
        flow.select_slot(slot_id, reservations, confirmed)
    except ConfirmationRequiredError as e:
        kind = e.kinds[0]
        await state.update_data(pending_slot=slot_id, slot_confirmed=confirmed)
        slot = flow.boat.time_slots_for(flow.draft.date)[int(slot_id)]
        if kind == BAIT_CONFIRMATION:
            text = (
                f"🎣 {slot.display}\n\n"
                f"На этот выход наживка не входит в стоимость, её нужно взять с собой."
            )
        else:
            text = (
                f"🌙 {slot.display}\n\n"
                f"Это ночной выход. Убедитесь, что выбрали правильную дату: "
                f"выход состоится в ночь на {format_date(flow.draft.date)}."
            )
        await callback.message.edit_text(text, reply_markup=get_slot_confirmation_keyboard(kind))
        await callback.answer()
        return

    await state.update_data(pending_slot=None, slot_confirmed=[])
    await _save_flow(state, flow)
    await _render_step(callback.message, state, flow)
    await callback.answer()


@router.callback_query(F.data.startswith("slot:"), BookingStates.choosing_slot)
async def process_slot(callback: CallbackQuery, state: FSMContext):
    """Обработка выбора слота"""
    _, revision, slot_id = callback.data.split(":")
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return

    try:
        if _is_stale(flow, revision):
            await _render_step(callback.message, state, flow)
            await callback.answer(STALE_KEYBOARD)
            return
        await _try_select_slot(callback, state, flow, slot_id, [])
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)


@router.callback_query(F.data.startswith("slot_confirm:"), BookingStates.choosing_slot)
async def process_slot_confirmation(callback: CallbackQuery, state: FSMContext):
    """Пользователь подтвердил предупреждение слота"""
    kind = callback.data.split(":")[1]
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return
    data = await state.get_data()
    slot_id = data.get('pending_slot')

    try:
        if slot_id is None:
            await _show_slots(callback.message, state, flow)
            await callback.answer()
            return
        confirmed = list(data.get('slot_confirmed', [])) + [kind]
        await _try_select_slot(callback, state, flow, slot_id, confirmed)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)


@router.callback_query(F.data == "slot_decline", BookingStates.choosing_slot)
async def process_slot_decline(callback: CallbackQuery, state: FSMContext):
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return
    try:
        await _show_slots(callback.message, state, flow)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return
    await callback.answer()


@router.callback_query(F.data == "seat_taken", BookingStates.choosing_seats)
async def process_seat_taken(callback: CallbackQuery):
    await callback.answer("Это место уже занято")


@router.callback_query(F.data.startswith("seat:"), BookingStates.choosing_seats)
async def process_seat(callback: CallbackQuery, state: FSMContext):
    """Выбор или снятие места"""
    _, revision, seat = callback.data.split(":")
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return

    try:
        if _is_stale(flow, revision):
            await _render_step(callback.message, state, flow)
            await callback.answer(STALE_KEYBOARD)
            return

        if not flow.toggle_seat(int(seat)):
            await callback.answer(
                f"Можно выбрать только {flow.required_seats} мест. Снимите лишнее место"
                if len(flow.draft.seats) >= flow.required_seats
                else "Это место недоступно"
            )
            return

        await _save_flow(state, flow)
        await _show_seats(callback.message, state, flow)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return
    await callback.answer()


@router.callback_query(F.data == "seats_refresh", BookingStates.choosing_seats)
async def process_seats_refresh(callback: CallbackQuery, state: FSMContext):
    """Перечитать занятые места слота"""
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return

    revision = flow.draft.revision
    try:
        fresh = ReservationRepository.get_active_by_slot(flow.boat.id, flow.draft.date, flow.draft.slot_id)
        before = list(flow.draft.seats)
        flow.apply_occupancy(flow.draft.date, flow.draft.slot_id, fresh, revision=revision)
        await _save_flow(state, flow)
        await _show_seats(callback.message, state, flow)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return

    if before != flow.draft.seats:
        await callback.answer("Часть выбранных мест успели занять, выберите другие", show_alert=True)
    else:
        await callback.answer("Обновлено")


@router.callback_query(F.data == "seats_done", BookingStates.choosing_seats)
async def process_seats_done(callback: CallbackQuery, state: FSMContext):
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return

    try:
        flow.confirm_seats()
        await _save_flow(state, flow)
        await _ask_name(callback.message, state, flow)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return
    await callback.answer()


# --- Контактные данные ---

@router.message(BookingStates.entering_name, F.text)
async def process_name(message: Message, state: FSMContext):
    name = message.text.strip()
    if not name:
        await message.answer("⚠️ Введите имя")
        return

    await state.update_data(contact_name=name)
    await message.answer("✍️ Введите фамилию:", reply_markup=get_cancel_keyboard())
    await state.set_state(BookingStates.entering_surname)


@router.message(BookingStates.entering_surname, F.text)
async def process_surname(message: Message, state: FSMContext):
    surname = message.text.strip()
    if not surname:
        await message.answer("⚠️ Введите фамилию")
        return

    await state.update_data(contact_surname=surname)
    await message.answer(
        "📱 Отправьте контактный телефон.\n"
        "Нажмите кнопку ниже или введите номер вручную:",
        reply_markup=get_phone_keyboard()
    )
    await state.set_state(BookingStates.entering_phone)


@router.message(BookingStates.entering_phone, F.contact)
async def process_contact(message: Message, state: FSMContext):
    """Обработка контакта"""
    await process_phone_number(message, state, message.contact.phone_number)


@router.message(BookingStates.entering_phone, F.text)
async def process_phone_text(message: Message, state: FSMContext):
    """Обработка текстового ввода телефона"""
    await process_phone_number(message, state, message.text.strip())


async def process_phone_number(message: Message, state: FSMContext, phone: str):
    """Общая обработка номера телефона"""
    flow = await _load_flow(state)
    if flow is None:
        await state.clear()
        await message.answer("Сессия бронирования истекла, начните заново")
        return
    data = await state.get_data()

    try:
        flow.set_contact(data.get('contact_name', ''), data.get('contact_surname', ''), phone)
        check_phone_allowed(phone)
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await _save_flow(state, flow)
    await message.answer("📱 Телефон сохранён", reply_markup=ReplyKeyboardRemove())
    await message.answer(
        "✉️ Введите email (необязательно):",
        reply_markup=get_skip_email_keyboard()
    )
    await state.set_state(BookingStates.entering_email)


@router.message(BookingStates.entering_email, F.text)
async def process_email(message: Message, state: FSMContext):
    email = message.text.strip()
    if '@' not in email:
        await message.answer("⚠️ Введите корректный email или нажмите «Пропустить»")
        return
    await _show_confirmation(message, state, email, edit=False)


@router.callback_query(F.data == "skip_email", BookingStates.entering_email)
async def process_skip_email(callback: CallbackQuery, state: FSMContext):
    await _show_confirmation(callback.message, state, '', edit=True)
    await callback.answer()


async def _show_confirmation(message: Message, state: FSMContext, email: str, edit: bool):
    """Итоговый экран перед отправкой"""
    flow = await _load_flow(state)
    if flow is None:
        await state.clear()
        await message.answer("Сессия бронирования истекла, начните заново")
        return

    try:
        flow.set_contact(flow.draft.name, flow.draft.surname, flow.draft.phone, email)
        flow.ensure_ready()
        tour = resolve_tour_type(flow.draft.tour_type, CustomTourRepository.get_active_tours())
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return
    await _save_flow(state, flow)

    summary = flow.summary()
    price = calculate_total_price(tour, flow.draft.adults, flow.draft.children)
    text = (
        f"✅ Подтверждение бронирования:\n\n"
        f"⛵ {summary['boat']}\n"
        f"🎫 {summary['tour']}\n"
        f"📅 {format_date(summary['date'])}\n"
        f"🕐 {summary['slot']}\n"
        f"💺 Места: {', '.join(map(str, summary['seats']))}\n"
        f"👥 Человек: {summary['people']}\n"
        f"👤 {summary['name']}\n"
        f"📱 {summary['phone']}\n"
        + (f"✉️ {summary['email']}\n" if summary['email'] else "")
        + f"\n💰 Итого: {price:g} TRY\n\n"
        f"Подтвердите бронирование:"
    )

    if edit:
        await message.edit_text(text, reply_markup=get_confirmation_keyboard(flow.draft.revision))
    else:
        await message.answer(text, reply_markup=get_confirmation_keyboard(flow.draft.revision))
    await state.set_state(BookingStates.confirming)


async def _notify_admins(callback: CallbackQuery, reservation: Reservation, boat: Boat):
    """Уведомление администраторов о новой брони"""
    username = callback.from_user.username
    admin_text = (
        f"📌 Новая бронь #{reservation.id}\n"
        f"👤 {reservation.full_name} (@{username or 'без username'})\n"
        f"📱 {reservation.user_phone}\n\n"
        + format_reservation(reservation, boat)
    )

    for admin_id in settings.ADMIN_IDS:
        try:
            await callback.bot.send_message(admin_id, admin_text)
        except Exception as e:
            logger.error(f"Не удалось отправить уведомление админу {admin_id}: {e}")


@router.callback_query(F.data == "confirm_booking", BookingStates.confirming)
async def confirm_booking(callback: CallbackQuery, state: FSMContext):
    """Подтверждение и создание бронирования"""
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return

    try:
        reservation = submit_reservation(
            flow, CustomTourRepository.get_active_tours(), callback.from_user.id
        )
    except CapacityConflictError as e:
        # черновик уже вернулся к выбору мест или слота
        await _save_flow(state, flow)
        await callback.answer(f"⚠️ {e.message}", show_alert=True)
        await _render_step(callback.message, state, flow)
        return
    except StoreUnavailableError as e:
        await callback.answer(f"⚠️ {e.message}. Попробуйте ещё раз", show_alert=True)
        return
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return

    await _notify_admins(callback, reservation, flow.boat)

    await callback.message.edit_text(
        f"✅ Бронирование отправлено!\n\n"
        + format_reservation(reservation, flow.boat)
        + "\n\nМы свяжемся с вами для подтверждения. Сохраните номер брони."
    )
    await callback.message.answer(
        "Выберите действие:",
        reply_markup=get_main_menu_keyboard(settings.is_admin(callback.from_user.id))
    )

    await state.clear()
    await callback.answer()


# --- Навигация ---

@router.callback_query(F.data.startswith("back:"))
async def go_back(callback: CallbackQuery, state: FSMContext):
    """Шаг назад: всё выбранное после него сбрасывается"""
    revision = callback.data.split(":")[1]
    flow = await _flow_or_restart(callback, state)
    if flow is None:
        return
    current = await state.get_state()

    try:
        if _is_stale(flow, revision):
            await _render_step(callback.message, state, flow)
            await callback.answer(STALE_KEYBOARD)
            return
        if current == BookingStates.choosing_children.state:
            await _show_adults(callback.message, state, flow)
        elif current == BookingStates.choosing_babies.state:
            await _show_children(callback.message, state, flow)
        elif flow.step == TOUR_TYPE:
            await state.clear()
            await _show_boats(callback.message)
            await state.set_state(BookingStates.choosing_boat)
        else:
            flow.go_back(flow.previous_step())
            await _save_flow(state, flow)
            await _render_step(callback.message, state, flow)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return
    await callback.answer()


@router.callback_query(F.data == "main_menu")
async def callback_main_menu(callback: CallbackQuery, state: FSMContext):
    """Возврат в главное меню"""
    await state.clear()

    await callback.message.answer(
        "🏠 Главное меню",
        reply_markup=get_main_menu_keyboard(settings.is_admin(callback.from_user.id))
    )
    await callback.answer()


@router.callback_query(F.data == "cancel")
async def cancel_booking_process(callback: CallbackQuery, state: FSMContext):
    """Отмена процесса бронирования"""
    await state.clear()

    await callback.message.edit_text("❌ Бронирование отменено")
    await callback.message.answer(
        "Выберите действие:",
        reply_markup=get_main_menu_keyboard(settings.is_admin(callback.from_user.id))
    )
    await callback.answer()


# --- Мои бронирования и поиск ---

@router.message(F.text == MENU_MY)
async def my_reservations(message: Message, state: FSMContext):
    """Просмотр бронирований пользователя"""
    await state.clear()
    try:
        reservations = ReservationRepository.get_user_reservations(
            message.from_user.id, to_date_str(local_today())
        )
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    if not reservations:
        await message.answer(
            "У вас пока нет активных бронирований.",
            reply_markup=get_main_menu_keyboard(settings.is_admin(message.from_user.id))
        )
        return

    await message.answer(
        "📋 Ваши бронирования:",
        reply_markup=get_reservations_keyboard(reservations)
    )


@router.callback_query(F.data.startswith("show_reservation:"))
async def show_reservation_details(callback: CallbackQuery):
    """Показать детали бронирования"""
    reservation_id = int(callback.data.split(":")[1])
    try:
        reservation = ReservationRepository.get_reservation_by_id(reservation_id)
        if not reservation or reservation.user_id != callback.from_user.id:
            await callback.answer("Бронирование не найдено", show_alert=True)
            return
        boat = BoatRepository.get_boat_by_id(reservation.boat_id)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return

    await callback.message.edit_text(format_reservation(reservation, boat))
    await callback.answer()


@router.message(F.text == MENU_LOOKUP)
async def lookup_start(message: Message, state: FSMContext):
    await state.clear()
    await message.answer(
        "🔎 Введите номер брони, например RV-20250101-1234:",
        reply_markup=get_cancel_keyboard()
    )
    await state.set_state(LookupStates.entering_number)


@router.message(LookupStates.entering_number, F.text)
async def lookup_number(message: Message, state: FSMContext):
    """Поиск брони по номеру"""
    try:
        reservation = ReservationRepository.get_by_number(message.text)
        boat = BoatRepository.get_boat_by_id(reservation.boat_id) if reservation else None
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    if reservation is None:
        await message.answer("Бронь с таким номером не найдена. Проверьте номер и попробуйте ещё раз")
        return

    await state.clear()
    await message.answer(
        format_reservation(reservation, boat),
        reply_markup=get_main_menu_keyboard(settings.is_admin(message.from_user.id))
    )

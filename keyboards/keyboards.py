"""
Клавиатуры для Telegram бота
"""
from typing import Dict, Iterable, List, Optional

from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton, ReplyKeyboardMarkup, KeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from database.models import Boat, Reservation, TimeSlot
from utils.availability import DAY_EMPTY, DAY_FULL
from utils.seats import seat_code, seat_rows
from utils.time_utils import WEEKDAYS, format_date, format_month, month_grid
from utils.tour_policy import BAIT_CONFIRMATION, TourType


MENU_BOOK = "⛵ Забронировать тур"
MENU_MY = "📋 Мои бронирования"
MENU_LOOKUP = "🔎 Найти бронь по номеру"
MENU_ADMIN = "⚙️ Админ-панель"

STATUS_LABELS = {
    'pending': '⏳ ожидает подтверждения',
    'confirmed': '✅ подтверждена',
    'cancelled': '❌ отменена',
    'completed': '🏁 завершена',
}


def get_main_menu_keyboard(is_admin: bool = False) -> ReplyKeyboardMarkup:
    """Главное меню"""
    buttons = [
        [KeyboardButton(text=MENU_BOOK)],
        [KeyboardButton(text=MENU_MY), KeyboardButton(text=MENU_LOOKUP)],
    ]

    if is_admin:
        buttons.append([KeyboardButton(text=MENU_ADMIN)])

    return ReplyKeyboardMarkup(keyboard=buttons, resize_keyboard=True)


def _back_button(revision: int) -> InlineKeyboardButton:
    """Кнопка «Назад» помнит ревизию черновика, на которой её показали"""
    return InlineKeyboardButton(text="◀️ Назад", callback_data=f"back:{revision}")


def _nav_buttons(builder: InlineKeyboardBuilder, revision: int):
    builder.button(text="◀️ Назад", callback_data=f"back:{revision}")
    builder.button(text="❌ Отмена", callback_data="cancel")


def get_boats_keyboard(boats: List[Boat]) -> InlineKeyboardMarkup:
    """Выбор лодки"""
    builder = InlineKeyboardBuilder()

    for boat in boats:
        builder.button(text=f"⛵ {boat.name} ({boat.capacity} мест)", callback_data=f"boat:{boat.id}")

    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(1)

    return builder.as_markup()


def get_tour_types_keyboard(tours: List[TourType]) -> InlineKeyboardMarkup:
    """Выбор типа тура"""
    builder = InlineKeyboardBuilder()

    for tour in tours:
        icon = "🔒" if tour.exclusive else "👥"
        builder.button(text=f"{icon} {tour.name}", callback_data=f"tour:{tour.id}")

    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(1)

    return builder.as_markup()


def get_count_keyboard(prefix: str, minimum: int, maximum: int, revision: int) -> InlineKeyboardMarkup:
    """Выбор количества человек: prefix - adults, children или babies"""
    builder = InlineKeyboardBuilder()

    for count in range(minimum, maximum + 1):
        builder.button(text=str(count), callback_data=f"{prefix}:{count}")

    builder.adjust(6)
    builder.row(
        _back_button(revision),
        InlineKeyboardButton(text="❌ Отмена", callback_data="cancel"),
    )

    return builder.as_markup()


def _day_marker(value: Optional[float], selectable: bool) -> str:
    if not selectable:
        return "🔴"
    if value is None or value == DAY_EMPTY:
        return "🟢"
    if value >= DAY_FULL:
        return "🔴"
    return "🟡"


def get_calendar_keyboard(year: int, month: int, fullness: Dict[str, float],
                          selectable: Iterable[str], revision: int,
                          can_prev: bool, can_next: bool) -> InlineKeyboardMarkup:
    """
    Календарь месяца.
    🟢 свободно, 🟡 частично занято, 🔴 недоступно.
    """
    selectable = set(selectable)
    rows = [[InlineKeyboardButton(text=format_month(year, month), callback_data="noop")]]
    rows.append([InlineKeyboardButton(text=day, callback_data="noop") for day in WEEKDAYS])

    for week in month_grid(year, month):
        row = []
        for date in week:
            if date is None:
                row.append(InlineKeyboardButton(text=" ", callback_data="noop"))
                continue
            day = int(date[-2:])
            if date not in fullness:
                row.append(InlineKeyboardButton(text=f"{day}", callback_data="noop"))
                continue
            is_selectable = date in selectable
            marker = _day_marker(fullness.get(date), is_selectable)
            row.append(InlineKeyboardButton(
                text=f"{day}{marker}",
                callback_data=f"day:{revision}:{date}" if is_selectable else "day_blocked"
            ))
        rows.append(row)

    paging = []
    if can_prev:
        paging.append(InlineKeyboardButton(text="⬅️", callback_data=f"cal:{year}:{month}:-1"))
    if can_next:
        paging.append(InlineKeyboardButton(text="➡️", callback_data=f"cal:{year}:{month}:1"))
    if paging:
        rows.append(paging)

    rows.append([
        _back_button(revision),
        InlineKeyboardButton(text="❌ Отмена", callback_data="cancel"),
    ])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def get_slots_keyboard(slots: List[TimeSlot], fullness: Dict[str, float],
                       selectable: Iterable[str], revision: int) -> InlineKeyboardMarkup:
    """Слоты дня с заполненностью"""
    builder = InlineKeyboardBuilder()
    selectable = set(selectable)

    for index, slot in enumerate(slots):
        slot_id = str(index)
        percent = int(round(fullness.get(slot_id, 0) * 100))
        marker = "🟢" if slot_id in selectable else "🔴"
        title = f"{slot.display_name} " if slot.display_name else ""
        builder.button(
            text=f"{marker} {title}{slot.display} · {percent}%",
            callback_data=f"slot:{revision}:{slot_id}"
        )

    _nav_buttons(builder, revision)
    builder.adjust(*([1] * len(slots)), 2)

    return builder.as_markup()


def get_slot_confirmation_keyboard(kind: str) -> InlineKeyboardMarkup:
    """Подтверждение предупреждения слота (наживка или ночной выход)"""
    builder = InlineKeyboardBuilder()

    text = "✅ Понятно, наживку беру с собой" if kind == BAIT_CONFIRMATION else "✅ Да, это ночной выход"
    builder.button(text=text, callback_data=f"slot_confirm:{kind}")
    builder.button(text="◀️ Другой слот", callback_data="slot_decline")
    builder.adjust(1)

    return builder.as_markup()


def get_seats_keyboard(boat: Boat, occupied: Iterable[int], selected: Iterable[int],
                       required: int, revision: int) -> InlineKeyboardMarkup:
    """
    Схема мест: слева левый борт (IS), справа правый (SA).
    ❌ занято, ✅ выбрано.
    """
    occupied, selected = set(occupied), set(selected)
    rows = []

    def seat_button(seat: Optional[int]) -> InlineKeyboardButton:
        if seat is None:
            return InlineKeyboardButton(text=" ", callback_data="noop")
        code = seat_code(seat, boat.code, boat.seat_layout, boat.capacity).rsplit('_', 1)[1]
        if seat in selected:
            return InlineKeyboardButton(text=f"✅ {code}", callback_data=f"seat:{revision}:{seat}")
        if seat in occupied:
            return InlineKeyboardButton(text=f"❌ {code}", callback_data="seat_taken")
        return InlineKeyboardButton(text=f"{seat} {code}", callback_data=f"seat:{revision}:{seat}")

    rows.append([
        InlineKeyboardButton(text="⬅️ İskele", callback_data="noop"),
        InlineKeyboardButton(text="Sancak ➡️", callback_data="noop"),
    ])
    for port, starboard in seat_rows(boat.capacity, boat.seat_layout):
        rows.append([seat_button(port), seat_button(starboard)])

    rows.append([
        InlineKeyboardButton(text="🔄 Обновить", callback_data="seats_refresh"),
        InlineKeyboardButton(
            text=f"➡️ Готово ({len(selected)}/{required})",
            callback_data="seats_done"
        ),
    ])
    rows.append([
        _back_button(revision),
        InlineKeyboardButton(text="❌ Отмена", callback_data="cancel"),
    ])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def get_phone_keyboard() -> ReplyKeyboardMarkup:
    """Клавиатура для отправки телефона"""
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text="📱 Отправить телефон", request_contact=True)]],
        resize_keyboard=True
    )


def get_skip_email_keyboard() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="⏭ Пропустить", callback_data="skip_email")
    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(1)
    return builder.as_markup()


def get_confirmation_keyboard(revision: int) -> InlineKeyboardMarkup:
    """Клавиатура подтверждения бронирования"""
    builder = InlineKeyboardBuilder()

    builder.button(text="✅ Подтвердить", callback_data="confirm_booking")
    builder.button(text="◀️ Изменить", callback_data=f"back:{revision}")
    builder.button(text="❌ Отмена", callback_data="cancel")
    builder.adjust(1)

    return builder.as_markup()


def get_reservations_keyboard(reservations: List[Reservation]) -> InlineKeyboardMarkup:
    """Клавиатура списка бронирований пользователя"""
    builder = InlineKeyboardBuilder()

    for reservation in reservations:
        text = f"🗓 {format_date(reservation.date)} {reservation.time_slot_display}"
        builder.button(text=text, callback_data=f"show_reservation:{reservation.id}")

    builder.button(text="🏠 Главное меню", callback_data="main_menu")
    builder.adjust(1)

    return builder.as_markup()


def get_admin_keyboard() -> InlineKeyboardMarkup:
    """Клавиатура админ-панели"""
    builder = InlineKeyboardBuilder()

    builder.button(text="📋 Брони на сегодня", callback_data="admin_today")
    builder.button(text="⏳ Ожидают подтверждения", callback_data="admin_pending")
    builder.button(text="🏠 Главное меню", callback_data="main_menu")
    builder.adjust(1)

    return builder.as_markup()


def get_admin_reservation_keyboard(reservation: Reservation) -> InlineKeyboardMarkup:
    """Действия администратора с бронью"""
    builder = InlineKeyboardBuilder()

    if reservation.status == 'pending':
        builder.button(text="✅ Подтвердить", callback_data=f"adm_approve:{reservation.id}")
        builder.button(text="❌ Отклонить", callback_data=f"adm_reject:{reservation.id}")
    if reservation.status == 'confirmed':
        builder.button(text="🏁 Завершить", callback_data=f"adm_complete:{reservation.id}")
    if reservation.payment_status != 'received':
        builder.button(text="💰 Оплата получена", callback_data=f"adm_paid:{reservation.id}")
    builder.button(text="🗑 Удалить", callback_data=f"adm_delete:{reservation.id}")
    builder.adjust(2)

    return builder.as_markup()


def get_delete_confirmation_keyboard(reservation_id: int) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="🗑 Да, удалить навсегда", callback_data=f"adm_delete_yes:{reservation_id}")
    builder.button(text="Отмена", callback_data="adm_delete_no")
    builder.adjust(1)
    return builder.as_markup()


def get_cancel_keyboard() -> InlineKeyboardMarkup:
    """Простая клавиатура отмены"""
    builder = InlineKeyboardBuilder()
    builder.button(text="❌ Отмена", callback_data="cancel")
    return builder.as_markup()

"""
Обработчики команд администраторов
"""
import logging
from typing import List, Optional

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.types import Message, CallbackQuery

from config import settings
from database.models import Reservation
from database.repository import BlacklistRepository, BoatRepository, ReservationRepository
from handlers.user_handlers import format_reservation
from keyboards.keyboards import (
    MENU_ADMIN, get_admin_keyboard, get_admin_reservation_keyboard, get_delete_confirmation_keyboard
)
from utils.errors import BookingError
from utils.reservation_service import (
    bulk_update_status, change_status, delete_reservation, mark_paid,
    update_people, update_phone, update_seats
)
from utils.time_utils import format_date, local_today, to_date_str

logger = logging.getLogger(__name__)
router = Router()

MESSAGE_LIMIT = 4000

STATUS_COMMANDS = {
    'approve': ('confirmed', "✅ Ваша бронь {number} подтверждена. Ждём вас!"),
    'reject': ('cancelled', "❌ Ваша бронь {number} отклонена. По вопросам обращайтесь к администрации."),
    'complete': ('completed', None),
}


def is_admin(user_id: int) -> bool:
    """Проверка прав администратора"""
    return settings.is_admin(user_id)


def _reservation_line(reservation: Reservation) -> str:
    seats = ", ".join(map(str, reservation.selected_seats))
    return (
        f"🔹 #{reservation.id} {reservation.reservation_number} [{reservation.status}]\n"
        f"   ⛵ лодка {reservation.boat_id}, 🕐 {reservation.time_slot_display}\n"
        f"   🎫 {reservation.tour_type}, 💺 {seats}\n"
        f"   👤 {reservation.full_name}, 📱 {reservation.user_phone}\n\n"
    )


async def _send_long(message: Message, header: str, blocks: List[str], footer: str = ''):
    """Отправка списка с разбиением на сообщения до 4000 символов"""
    current = header
    for block in blocks:
        if len(current) + len(block) > MESSAGE_LIMIT:
            await message.answer(current)
            current = block
        else:
            current += block
    await message.answer(current + footer)


def _parse_id(command: CommandObject) -> Optional[int]:
    if not command.args:
        return None
    first = command.args.split()[0]
    return int(first) if first.isdigit() else None


async def _notify_user(message: Message, reservation: Reservation, text: str):
    if not reservation.user_id:
        return
    try:
        await message.bot.send_message(reservation.user_id, text)
    except Exception as e:
        logger.error(f"Не удалось уведомить пользователя {reservation.user_id}: {e}")


@router.message(F.text == MENU_ADMIN)
async def admin_panel(message: Message):
    """Открытие админ-панели"""
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к админ-панели")
        return

    await message.answer(
        "⚙️ Админ-панель\n\n"
        "Команды:\n"
        "/today, /pending - списки броней\n"
        "/approve, /reject, /complete, /paid, /delete <id>\n"
        "/bulk_approve, /bulk_complete <id> <id> ...\n"
        "/seats <id> <места> - например /seats 5 1 2 T1_SA3\n"
        "/phone <id> <телефон>, /people <id> <количество>\n"
        "/ban <телефон> [причина], /unban <телефон>\n\n"
        "Выберите действие:",
        reply_markup=get_admin_keyboard()
    )


# --- Списки ---

@router.message(Command("today"))
async def cmd_today(message: Message):
    """Команда /today - список броней на сегодня"""
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    await show_today_reservations(message)


@router.callback_query(F.data == "admin_today")
async def callback_today(callback: CallbackQuery):
    """Callback для броней на сегодня"""
    if not is_admin(callback.from_user.id):
        await callback.answer("⚠️ У вас нет доступа", show_alert=True)
        return

    await show_today_reservations(callback.message)
    await callback.answer()


async def show_today_reservations(message: Message):
    """Показать брони на сегодня"""
    try:
        reservations = ReservationRepository.get_by_date(to_date_str(local_today()))
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    if not reservations:
        await message.answer("📋 На сегодня нет бронирований")
        return

    active = [r for r in reservations if r.is_active]
    await _send_long(
        message,
        f"📋 Бронирования на {format_date(local_today())}:\n\n",
        [_reservation_line(r) for r in reservations],
        f"Всего броней: {len(reservations)}, активных: {len(active)}"
    )


@router.message(Command("pending"))
async def cmd_pending(message: Message):
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    await show_pending_reservations(message)


@router.callback_query(F.data == "admin_pending")
async def callback_pending(callback: CallbackQuery):
    if not is_admin(callback.from_user.id):
        await callback.answer("⚠️ У вас нет доступа", show_alert=True)
        return

    await show_pending_reservations(callback.message)
    await callback.answer()


async def show_pending_reservations(message: Message):
    """Брони, ожидающие подтверждения, с кнопками действий"""
    try:
        reservations = ReservationRepository.get_pending()
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    if not reservations:
        await message.answer("⏳ Нет броней, ожидающих подтверждения")
        return

    for reservation in reservations:
        await message.answer(
            f"#{reservation.id} {reservation.full_name}, 📱 {reservation.user_phone}\n\n"
            + format_reservation(reservation, BoatRepository.get_boat_by_id(reservation.boat_id)),
            reply_markup=get_admin_reservation_keyboard(reservation)
        )


# --- Статусы ---

async def _apply_status(message: Message, reservation_id: int, action: str) -> bool:
    status, user_text = STATUS_COMMANDS[action]
    try:
        reservation = change_status(reservation_id, status)
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return False

    await message.answer(
        f"✅ Бронь #{reservation_id} ({reservation.reservation_number}): статус {status}"
    )
    if user_text:
        await _notify_user(message, reservation, user_text.format(number=reservation.reservation_number))
    return True


@router.message(Command("approve", "reject", "complete"))
async def cmd_status(message: Message, command: CommandObject):
    """Команды /approve, /reject, /complete <id>"""
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    reservation_id = _parse_id(command)
    if reservation_id is None:
        await message.answer(f"⚠️ Использование: /{command.command} <id>\n\nПример: /{command.command} 123")
        return

    await _apply_status(message, reservation_id, command.command)


@router.callback_query(F.data.regexp(r"^adm_(approve|reject|complete):\d+$"))
async def callback_status(callback: CallbackQuery):
    if not is_admin(callback.from_user.id):
        await callback.answer("⚠️ У вас нет доступа", show_alert=True)
        return

    action, reservation_id = callback.data[len("adm_"):].split(":")
    if await _apply_status(callback.message, int(reservation_id), action):
        await callback.message.edit_reply_markup(reply_markup=None)
    await callback.answer()


@router.message(Command("bulk_approve", "bulk_complete"))
async def cmd_bulk_status(message: Message, command: CommandObject):
    """Массовое обновление: /bulk_approve 1 2 3"""
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    ids = [int(part) for part in (command.args or '').replace(',', ' ').split() if part.isdigit()]
    if not ids:
        await message.answer(f"⚠️ Использование: /{command.command} <id> <id> ...")
        return

    status = 'confirmed' if command.command == 'bulk_approve' else 'completed'
    succeeded, total = bulk_update_status(ids, status)
    await message.answer(f"{'✅' if succeeded == total else '⚠️'} Обновлено {succeeded} из {total}")


async def _apply_paid(message: Message, reservation_id: int):
    try:
        reservation = mark_paid(reservation_id)
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return
    await message.answer(f"💰 Оплата по брони {reservation.reservation_number} отмечена")


@router.message(Command("paid"))
async def cmd_paid(message: Message, command: CommandObject):
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    reservation_id = _parse_id(command)
    if reservation_id is None:
        await message.answer("⚠️ Использование: /paid <id>")
        return
    await _apply_paid(message, reservation_id)


@router.callback_query(F.data.startswith("adm_paid:"))
async def callback_paid(callback: CallbackQuery):
    if not is_admin(callback.from_user.id):
        await callback.answer("⚠️ У вас нет доступа", show_alert=True)
        return

    await _apply_paid(callback.message, int(callback.data.split(":")[1]))
    await callback.answer()


# --- Удаление ---

@router.message(Command("delete"))
async def cmd_delete(message: Message, command: CommandObject):
    """Команда /delete <id> - удаление с подтверждением"""
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    reservation_id = _parse_id(command)
    if reservation_id is None:
        await message.answer("⚠️ Использование: /delete <id>")
        return

    await message.answer(
        f"🗑 Удалить бронь #{reservation_id}? Это действие нельзя отменить.",
        reply_markup=get_delete_confirmation_keyboard(reservation_id)
    )


@router.callback_query(F.data.startswith("adm_delete:"))
async def callback_delete(callback: CallbackQuery):
    if not is_admin(callback.from_user.id):
        await callback.answer("⚠️ У вас нет доступа", show_alert=True)
        return

    reservation_id = int(callback.data.split(":")[1])
    await callback.message.answer(
        f"🗑 Удалить бронь #{reservation_id}? Это действие нельзя отменить.",
        reply_markup=get_delete_confirmation_keyboard(reservation_id)
    )
    await callback.answer()


@router.callback_query(F.data.startswith("adm_delete_yes:"))
async def callback_delete_confirmed(callback: CallbackQuery):
    if not is_admin(callback.from_user.id):
        await callback.answer("⚠️ У вас нет доступа", show_alert=True)
        return

    reservation_id = int(callback.data.split(":")[1])
    try:
        reservation = delete_reservation(reservation_id)
    except BookingError as e:
        await callback.answer(e.message, show_alert=True)
        return

    await callback.message.edit_text(f"🗑 Бронь {reservation.reservation_number} удалена")
    await callback.answer()


@router.callback_query(F.data == "adm_delete_no")
async def callback_delete_declined(callback: CallbackQuery):
    await callback.message.edit_text("Удаление отменено")
    await callback.answer()


# --- Редактирование ---

@router.message(Command("seats"))
async def cmd_seats(message: Message, command: CommandObject):
    """/seats <id> <место> <место> ... (номера или коды T1_IS4)"""
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    parts = (command.args or '').replace(',', ' ').split()
    if len(parts) < 2 or not parts[0].isdigit():
        await message.answer("⚠️ Использование: /seats <id> <места>\n\nПример: /seats 12 1 2 T1_SA3")
        return

    try:
        reservation = update_seats(int(parts[0]), parts[1:])
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await message.answer(
        f"✅ Места брони {reservation.reservation_number}: "
        + ", ".join(map(str, reservation.selected_seats))
    )


@router.message(Command("phone"))
async def cmd_phone(message: Message, command: CommandObject):
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    parts = (command.args or '').split(maxsplit=1)
    if len(parts) < 2 or not parts[0].isdigit():
        await message.answer("⚠️ Использование: /phone <id> <телефон>")
        return

    try:
        reservation = update_phone(int(parts[0]), parts[1])
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await message.answer(f"✅ Телефон брони {reservation.reservation_number}: {reservation.user_phone}")


@router.message(Command("people"))
async def cmd_people(message: Message, command: CommandObject):
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    parts = (command.args or '').split()
    if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
        await message.answer("⚠️ Использование: /people <id> <количество>")
        return

    try:
        reservation = update_people(int(parts[0]), int(parts[1]))
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await message.answer(
        f"✅ Количество человек в брони {reservation.reservation_number}: {reservation.total_people}"
    )


# --- Чёрный список ---

@router.message(Command("ban"))
async def cmd_ban(message: Message, command: CommandObject):
    """/ban <телефон> [причина]"""
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    parts = (command.args or '').split(maxsplit=1)
    if not parts:
        await message.answer("⚠️ Использование: /ban <телефон> [причина]")
        return

    reason = parts[1] if len(parts) > 1 else ''
    try:
        added = BlacklistRepository.add(parts[0], reason=reason)
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    if added:
        logger.info(f"Номер {parts[0]} добавлен в чёрный список")
        await message.answer(f"🚫 Номер {parts[0]} добавлен в чёрный список")
    else:
        await message.answer("⚠️ Номер уже в списке или слишком короткий")


@router.message(Command("unban"))
async def cmd_unban(message: Message, command: CommandObject):
    if not is_admin(message.from_user.id):
        await message.answer("⚠️ У вас нет доступа к этой команде")
        return

    phone = (command.args or '').strip()
    if not phone:
        await message.answer("⚠️ Использование: /unban <телефон>")
        return

    try:
        removed = BlacklistRepository.remove(phone)
    except BookingError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await message.answer(
        f"✅ Номер {phone} удалён из чёрного списка" if removed else "⚠️ Номер не найден в списке"
    )

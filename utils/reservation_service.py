"""
Запись бронирований и административные операции над ними.

Перед записью брони занятость перечитывается из БД в той же транзакции,
что и вставка. Снимок, по которому пользователь выбирал места, для этой
проверки не используется.
"""
import logging
import random
import re
from datetime import date as date_type, datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from config import settings
from database.models import (
    ACTIVE_STATUSES, FISHING_SWIMMING_TOUR, NORMAL_TOUR, PRIVATE_TOUR, RESERVATION_STATUSES,
    CustomTour, Reservation
)
from database.repository import BlacklistRepository, BoatRepository, ReservationRepository
from states.booking_flow import BookingFlow
from utils.errors import BookingError, CapacityConflictError, ValidationError
from utils.seats import is_valid_seat, occupied_seats, parse_seat_code
from utils.time_utils import local_today, normalize_date_str
from utils.tour_policy import TourType, resolve_tour_type

logger = logging.getLogger(__name__)

NUMBER_ATTEMPTS = 5


def generate_reservation_number(today: date_type = None) -> str:
    """Номер вида RV-YYYYMMDD-NNNN"""
    today = today or local_today()
    return f"RV-{today.strftime('%Y%m%d')}-{random.randint(1000, 9999)}"


def calculate_total_price(tour: TourType, adults: int, children: int) -> float:
    """
    Стоимость брони.
    Обычный тур - за взрослого полная цена, за ребёнка половина, младенцы бесплатно.
    """
    if tour.id == NORMAL_TOUR:
        return settings.PRICE_NORMAL * adults + settings.PRICE_NORMAL * settings.CHILD_PRICE_RATIO * children
    if tour.id == PRIVATE_TOUR:
        return settings.PRICE_PRIVATE
    if tour.id == FISHING_SWIMMING_TOUR:
        return settings.PRICE_FISHING_SWIMMING
    return tour.price or 0


def check_phone_allowed(phone: str):
    if BlacklistRepository.is_blacklisted(phone):
        logger.warning(f"Попытка брони с номера из чёрного списка: {phone}")
        raise ValidationError("Бронирование с этого номера недоступно. Свяжитесь с нами по телефону")


def recheck(flow: BookingFlow, fresh_reservations: Iterable[Reservation]):
    """
    Проверка черновика по свежим данным.
    Эксклюзивному туру мешает любая активная бронь лодки на эту дату,
    обычному - занятые выбранные места или заполненный слот.
    """
    draft = flow.draft
    fresh = [
        r for r in fresh_reservations
        if r.is_active and r.boat_id == flow.boat.id and normalize_date_str(r.date) == draft.date
    ]

    if draft.exclusive:
        if fresh:
            raise CapacityConflictError("Пока вы оформляли заказ, на эту дату появилась другая бронь")
        return

    in_slot = [r for r in fresh if str(r.time_slot_id) == draft.slot_id]
    if any(r.is_exclusive for r in in_slot):
        raise CapacityConflictError("Этот слот уже полностью забронирован", draft.seats)

    taken = occupied_seats(in_slot)
    conflicting = taken.intersection(draft.seats)
    if conflicting:
        raise CapacityConflictError(
            "Некоторые места уже заняты, выберите другие",
            conflicting
        )

    if len(taken) + len(draft.seats) > flow.boat.capacity:
        raise CapacityConflictError("В этом слоте не осталось столько мест")


def build_reservation(flow: BookingFlow, tour: TourType, user_id: Optional[int],
                      now: datetime = None) -> Reservation:
    """Запись о брони по готовому черновику"""
    draft = flow.draft
    now = now or datetime.now()
    return Reservation(
        id=None,
        reservation_number=generate_reservation_number(now.date()),
        boat_id=flow.boat.id,
        date=draft.date,
        time_slot_id=draft.slot_id,
        time_slot_display=draft.slot_display,
        tour_type=draft.tour_type,
        is_private_tour=tour.exclusive,
        selected_seats=sorted(draft.seats),
        user_id=user_id,
        user_name=draft.name,
        user_surname=draft.surname,
        user_phone=draft.phone,
        user_email=draft.email,
        adult_count=draft.adults,
        child_count=draft.children,
        baby_count=draft.babies,
        total_people=flow.party_size,
        total_price=calculate_total_price(tour, draft.adults, draft.children),
        created_at=now
    )


def submit_reservation(flow: BookingFlow, registry: Sequence[CustomTour],
                       user_id: Optional[int], now: datetime = None) -> Reservation:
    """
    Отправка черновика.
    При конфликте мест черновик возвращается к выбору мест (или слота)
    с обновлённой занятостью, а CapacityConflictError пробрасывается дальше.
    """
    flow.ensure_ready()
    tour = resolve_tour_type(flow.draft.tour_type, registry)
    check_phone_allowed(flow.draft.phone)

    reservation = build_reservation(flow, tour, user_id, now)
    for _ in range(NUMBER_ATTEMPTS):
        if ReservationRepository.get_by_number(reservation.reservation_number) is None:
            break
        reservation.reservation_number = generate_reservation_number(reservation.created_at.date())

    try:
        reservation.id = ReservationRepository.create_reservation(
            reservation,
            validate=lambda fresh: recheck(flow, fresh)
        )
    except CapacityConflictError as e:
        logger.warning(
            f"Конфликт мест: лодка {flow.boat.id}, {flow.draft.date}, слот {flow.draft.slot_id}, "
            f"места {e.conflicting_seats}"
        )
        fresh = ReservationRepository.get_active_by_slot(flow.boat.id, flow.draft.date, flow.draft.slot_id)
        flow.handle_conflict(fresh)
        raise

    flow.mark_submitted(reservation)
    logger.info(
        f"Создана бронь {reservation.reservation_number}: лодка {reservation.boat_id}, "
        f"{reservation.date} слот {reservation.time_slot_id}, мест {len(reservation.selected_seats)}"
    )
    return reservation


# --- Администрирование ---

def _get_reservation(reservation_id: int) -> Reservation:
    reservation = ReservationRepository.get_reservation_by_id(reservation_id)
    if reservation is None:
        raise ValidationError(f"Бронь #{reservation_id} не найдена")
    return reservation


def _ensure_no_overlap(reservation: Reservation, seats: Sequence[int]):
    """
    Места брони не пересекаются с другими активными бронями. Эксклюзивной
    брони мешает любая другая бронь лодки на эту дату.
    """
    others = [
        r for r in ReservationRepository.get_active_by_date(reservation.boat_id, reservation.date)
        if r.id != reservation.id
    ]
    if reservation.is_exclusive:
        if others:
            raise CapacityConflictError("На эту дату у лодки уже есть другие брони", seats)
        return

    in_slot = [r for r in others if str(r.time_slot_id) == str(reservation.time_slot_id)]
    if any(r.is_exclusive for r in in_slot):
        raise CapacityConflictError("Слот занят эксклюзивным туром", seats)
    conflicting = occupied_seats(in_slot).intersection(seats)
    if conflicting:
        raise CapacityConflictError(
            "Места заняты другими бронями: " + ", ".join(map(str, sorted(conflicting))),
            conflicting
        )


def change_status(reservation_id: int, status: str) -> Reservation:
    """
    Смена статуса брони администратором.
    Отменённую или завершённую бронь можно вернуть в работу, только если
    её места никто не занял.
    """
    if status not in RESERVATION_STATUSES:
        raise ValidationError(f"Неизвестный статус: {status}")

    reservation = _get_reservation(reservation_id)
    if not reservation.is_active and status in ACTIVE_STATUSES:
        _ensure_no_overlap(reservation, reservation.selected_seats)
    ReservationRepository.update_status(reservation_id, status)
    logger.info(f"Бронь #{reservation_id}: статус -> {status}")
    return ReservationRepository.get_reservation_by_id(reservation_id)


def bulk_update_status(reservation_ids: Iterable[int], status: str) -> Tuple[int, int]:
    """
    Массовая смена статуса. Каждая бронь обновляется отдельно, без общей
    транзакции: при сбое часть записей остаётся изменённой.
    Возвращает (успешно, всего).
    """
    reservation_ids = list(reservation_ids)
    succeeded = 0
    for reservation_id in reservation_ids:
        try:
            change_status(reservation_id, status)
            succeeded += 1
        except BookingError as e:
            logger.error(f"Не удалось обновить бронь #{reservation_id}: {e.message}")

    logger.info(f"Массовое обновление -> {status}: {succeeded} из {len(reservation_ids)}")
    return succeeded, len(reservation_ids)


def update_seats(reservation_id: int, seat_codes: Iterable) -> Reservation:
    """
    Замена мест брони. Принимает номера и коды вида T1_IS4.
    Места не должны пересекаться с другими активными бронями слота.
    """
    reservation = _get_reservation(reservation_id)
    boat = BoatRepository.get_boat_by_id(reservation.boat_id)
    if boat is None:
        raise ValidationError("Лодка брони не найдена")

    seats: List[int] = []
    for code in seat_codes:
        seat = parse_seat_code(code, boat.capacity, boat.seat_layout)
        if seat is None or not is_valid_seat(seat, boat.capacity):
            raise ValidationError(f"Неверное место: {code}")
        if seat in seats:
            raise ValidationError(f"Место {seat} указано дважды")
        seats.append(seat)
    if not seats:
        raise ValidationError("Укажите хотя бы одно место")

    if reservation.is_active:
        _ensure_no_overlap(reservation, seats)

    ReservationRepository.update_fields(reservation_id, selected_seats=seats)
    logger.info(f"Бронь #{reservation_id}: места -> {sorted(seats)}")
    return ReservationRepository.get_reservation_by_id(reservation_id)


def update_phone(reservation_id: int, phone: str) -> Reservation:
    _get_reservation(reservation_id)
    phone = (phone or '').strip()
    if len(re.sub(r'\D', '', phone)) < 10:
        raise ValidationError("Введите корректный номер телефона")

    ReservationRepository.update_fields(reservation_id, user_phone=phone)
    return ReservationRepository.get_reservation_by_id(reservation_id)


def update_people(reservation_id: int, total_people: int) -> Reservation:
    reservation = _get_reservation(reservation_id)
    boat = BoatRepository.get_boat_by_id(reservation.boat_id)
    capacity = boat.capacity if boat else settings.DEFAULT_CAPACITY
    if total_people < 1 or total_people > capacity + settings.MAX_BABIES:
        raise ValidationError("Неверное количество человек")

    ReservationRepository.update_fields(reservation_id, total_people=total_people)
    return ReservationRepository.get_reservation_by_id(reservation_id)


def mark_paid(reservation_id: int) -> Reservation:
    _get_reservation(reservation_id)
    ReservationRepository.mark_payment_received(reservation_id)
    logger.info(f"Бронь #{reservation_id}: оплата получена")
    return ReservationRepository.get_reservation_by_id(reservation_id)


def delete_reservation(reservation_id: int) -> Reservation:
    """Безвозвратное удаление, возвращает удалённую запись"""
    reservation = _get_reservation(reservation_id)
    ReservationRepository.delete_reservation(reservation_id)
    logger.info(f"Бронь {reservation.reservation_number} удалена")
    return reservation


def complete_past_reservations(today: date_type = None) -> int:
    """Подтверждённые брони прошедших дней -> completed"""
    today = today or local_today()
    count = ReservationRepository.complete_past(today.strftime('%Y-%m-%d'))
    if count:
        logger.info(f"Завершено прошедших броней: {count}")
    return count

"""
Расчёт заполненности лодки по слотам и дням.

Все функции - чистые проекции над списком бронирований: ничего не кешируют
и пересчитываются на каждом чтении из хранилища.
"""
from collections import defaultdict
from typing import Dict, Iterable, List

from database.models import Boat, Reservation
from utils.time_utils import month_dates, normalize_date_str


DAY_EMPTY = 0.0
DAY_PARTIAL = 0.5
DAY_FULL = 1.0


def _matches(reservation: Reservation, boat_id: int, date: str, slot_id: str) -> bool:
    return (
        reservation.is_active
        and reservation.boat_id == boat_id
        and normalize_date_str(reservation.date) == date
        and str(reservation.time_slot_id) == str(slot_id)
    )


def occupied_count(reservations: Iterable[Reservation], capacity: int) -> int:
    """
    Сколько мест занято в слоте (бронирования уже отфильтрованы по слоту).
    Эксклюзивный тур занимает всю лодку, сколько бы мест он ни записал.
    """
    total = 0
    for reservation in reservations:
        if not reservation.is_active:
            continue
        if reservation.is_exclusive:
            return capacity
        total += len(reservation.selected_seats or [])
    return min(total, capacity)


def fullness_for_slot(boat_id: int, date: str, slot_id: str,
                      reservations: Iterable[Reservation], capacity: int) -> float:
    """Заполненность слота в диапазоне [0, 1]"""
    if capacity <= 0:
        return 1.0

    matching = [r for r in reservations if _matches(r, boat_id, date, slot_id)]
    if any(r.is_exclusive for r in matching):
        return 1.0

    seats = sum(len(r.selected_seats or []) for r in matching)
    return min(1.0, seats / capacity)


def fullness_for_all_slots(boat: Boat, date: str,
                           reservations: Iterable[Reservation]) -> Dict[str, float]:
    """Заполненность каждого слота лодки на дату: {slot_id: fullness}"""
    reservations = list(reservations)
    return {
        str(index): fullness_for_slot(boat.id, date, str(index), reservations, boat.capacity)
        for index, _ in enumerate(boat.time_slots_for(date))
    }


def day_fullness(slot_fullness: Iterable[float]) -> float:
    """
    Сводный признак дня для календаря:
    0 - все слоты пустые, 1 - каждый слот заполнен, 0.5 - всё остальное.
    """
    values = list(slot_fullness)
    if not values:
        return DAY_EMPTY
    if all(value >= 1 for value in values):
        return DAY_FULL
    if any(value > 0 for value in values):
        return DAY_PARTIAL
    return DAY_EMPTY


def group_by_date(reservations: Iterable[Reservation]) -> Dict[str, List[Reservation]]:
    grouped = defaultdict(list)
    for reservation in reservations:
        grouped[normalize_date_str(reservation.date)].append(reservation)
    return grouped


def fullness_for_month(boat: Boat, year: int, month: int,
                       reservations: Iterable[Reservation]) -> Dict[str, float]:
    """
    Признак заполненности для каждого дня месяца: {YYYY-MM-DD: 0 | 0.5 | 1}.
    Дни, на которые у лодки нет слотов, в результат не попадают.
    """
    by_date = group_by_date(r for r in reservations if r.boat_id == boat.id)
    result = {}
    for date in month_dates(year, month):
        if not boat.time_slots_for(date):
            continue
        slots = fullness_for_all_slots(boat, date, by_date.get(date, []))
        result[date] = day_fullness(slots.values())
    return result

"""
Модель мест на лодке.

Место - целое число в [1, capacity]. Борт и позиция не хранятся, а выводятся
из схемы рассадки:

* single - места 1..capacity/2 по левому борту (İskele, IS),
  остальные по правому (Sancak, SA);
* double - пары (2k-1, 2k) в одном ряду: нечётное место IS, чётное SA.

Код места ``{boat_code}_{SIDE}{position}`` нужен только для отображения.
"""
from typing import Iterable, List, Optional, Set, Tuple

from database.models import ACTIVE_STATUSES, Reservation


PORT = 'IS'       # İskele, левый борт
STARBOARD = 'SA'  # Sancak, правый борт


def all_seats(capacity: int) -> List[int]:
    """Все места лодки по порядку"""
    return list(range(1, capacity + 1))


def is_valid_seat(seat: int, capacity: int) -> bool:
    return isinstance(seat, int) and 1 <= seat <= capacity


def occupied_seats(reservations: Iterable[Reservation]) -> Set[int]:
    """
    Объединение мест всех активных (pending, confirmed) бронирований.
    Места вне диапазона лодки (битые данные) тоже попадают в результат.
    """
    occupied = set()
    for reservation in reservations:
        if reservation.status not in ACTIVE_STATUSES:
            continue
        occupied.update(reservation.selected_seats or [])
    return occupied


def seat_side(seat: int, capacity: int, layout: str = 'single') -> Tuple[str, int]:
    """Борт и номер места на борту"""
    if layout == 'double':
        row = (seat + 1) // 2
        return (PORT if seat % 2 == 1 else STARBOARD), row

    half = capacity // 2
    if seat <= half:
        return PORT, seat
    return STARBOARD, seat - half


def seat_code(seat: int, boat_code: str, layout: str = 'single', capacity: int = 12) -> str:
    """Код места для отображения, например T1_IS4"""
    side, position = seat_side(seat, capacity, layout)
    return f"{boat_code}_{side}{position}"


def parse_seat_code(code, capacity: int = 12, layout: str = 'single') -> Optional[int]:
    """
    Номер места по коду.
    Понимает числа ("5", 5) и коды вида T1_IS4 / T1_SA2 (в т.ч. старого формата,
    где правый борт смещён на половину вместимости).
    Возвращает None, если код не удалось разобрать.
    """
    if isinstance(code, int):
        return code if code > 0 else None

    code = str(code).strip()
    if code.isdigit():
        number = int(code)
        return number if number > 0 else None

    parts = code.split('_')
    if len(parts) != 2:
        return None

    side, position = parts[1][:2].upper(), parts[1][2:]
    if side not in (PORT, STARBOARD) or not position.isdigit():
        return None

    position = int(position)
    if position <= 0:
        return None

    if layout == 'double':
        return position * 2 - 1 if side == PORT else position * 2
    return position if side == PORT else position + capacity // 2


def seat_rows(capacity: int, layout: str = 'single') -> List[Tuple[Optional[int], Optional[int]]]:
    """
    Ряды мест (левый борт, правый борт) для рисования схемы.
    Для single в ряду k стоят места k и k + capacity/2.
    """
    if layout == 'double':
        return [
            (seat, seat + 1 if seat + 1 <= capacity else None)
            for seat in range(1, capacity + 1, 2)
        ]

    half = capacity // 2
    rows = []
    for position in range(1, capacity - half + 1):
        port = position if position <= half else None
        starboard = half + position
        rows.append((port, starboard if starboard <= capacity else None))
    return rows

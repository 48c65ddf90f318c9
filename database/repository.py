"""
Репозиторий для работы с данными
"""
import json
import re
from datetime import datetime
from typing import Callable, List, Optional

from database.database import get_db
from database.models import (
    BlacklistEntry, Boat, CustomTour, Reservation,
    ScheduledTimeSlots, TimeSlot
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(sep=' ', timespec='seconds') if value else None


def _parse_ts(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class ReservationRepository:
    """Репозиторий для работы с бронированиями"""

    EDITABLE_FIELDS = ('selected_seats', 'user_phone', 'total_people', 'status', 'payment_status')

    @staticmethod
    def create_reservation(reservation: Reservation,
                           validate: Optional[Callable[[List[Reservation]], None]] = None) -> int:
        """
        Создание бронирования одной вставкой.
        Если передан validate, он получает свежие активные брони лодки на дату
        и выполняется в той же транзакции, что и вставка: исключение из validate
        отменяет запись.
        """
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("BEGIN IMMEDIATE")

            if validate is not None:
                cursor.execute("""
                    SELECT * FROM reservations
                    WHERE boat_id = ? AND date = ? AND status IN ('pending', 'confirmed')
                """, (reservation.boat_id, reservation.date))
                validate([ReservationRepository._row_to_reservation(row) for row in cursor.fetchall()])

            cursor.execute("""
                INSERT INTO reservations
                (reservation_number, boat_id, date, time_slot_id, time_slot_display,
                 tour_type, is_private_tour, selected_seats, user_id, user_name,
                 user_surname, user_phone, user_email, adult_count, child_count,
                 baby_count, total_people, total_price, status, payment_status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                reservation.reservation_number,
                reservation.boat_id,
                reservation.date,
                reservation.time_slot_id,
                reservation.time_slot_display,
                reservation.tour_type,
                int(reservation.is_private_tour),
                json.dumps(sorted(reservation.selected_seats)),
                reservation.user_id,
                reservation.user_name,
                reservation.user_surname,
                reservation.user_phone,
                reservation.user_email,
                reservation.adult_count,
                reservation.child_count,
                reservation.baby_count,
                reservation.total_people,
                reservation.total_price,
                reservation.status,
                reservation.payment_status,
                _ts(reservation.created_at)
            ))
            return cursor.lastrowid

    @staticmethod
    def get_active_by_slot(boat_id: int, date: str, time_slot_id: str) -> List[Reservation]:
        """Активные брони лодки на дату и слот"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM reservations
                WHERE boat_id = ? AND date = ? AND time_slot_id = ?
                AND status IN ('pending', 'confirmed')
            """, (boat_id, date, str(time_slot_id)))

            rows = cursor.fetchall()
            return [ReservationRepository._row_to_reservation(row) for row in rows]

    @staticmethod
    def get_active_by_date(boat_id: int, date: str) -> List[Reservation]:
        """Активные брони лодки на дату (все слоты)"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM reservations
                WHERE boat_id = ? AND date = ? AND status IN ('pending', 'confirmed')
                ORDER BY time_slot_id
            """, (boat_id, date))

            rows = cursor.fetchall()
            return [ReservationRepository._row_to_reservation(row) for row in rows]

    @staticmethod
    def get_by_date_range(boat_id: int, start_date: str, end_date: str) -> List[Reservation]:
        """Активные брони лодки в диапазоне дат (для календаря)"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM reservations
                WHERE boat_id = ? AND date >= ? AND date <= ?
                AND status IN ('pending', 'confirmed')
                ORDER BY date, time_slot_id
            """, (boat_id, start_date, end_date))

            rows = cursor.fetchall()
            return [ReservationRepository._row_to_reservation(row) for row in rows]

    @staticmethod
    def get_user_reservations(user_id: int, today: str) -> List[Reservation]:
        """Предстоящие активные брони пользователя"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM reservations
                WHERE user_id = ? AND status IN ('pending', 'confirmed') AND date >= ?
                ORDER BY date, time_slot_id
            """, (user_id, today))

            rows = cursor.fetchall()
            return [ReservationRepository._row_to_reservation(row) for row in rows]

    @staticmethod
    def get_by_date(date: str) -> List[Reservation]:
        """Все брони на дату (включая отменённые)"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM reservations
                WHERE date = ?
                ORDER BY boat_id, time_slot_id, status DESC
            """, (date,))

            rows = cursor.fetchall()
            return [ReservationRepository._row_to_reservation(row) for row in rows]

    @staticmethod
    def get_pending() -> List[Reservation]:
        """Брони, ожидающие подтверждения"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM reservations
                WHERE status = 'pending'
                ORDER BY date, time_slot_id, created_at
            """)

            rows = cursor.fetchall()
            return [ReservationRepository._row_to_reservation(row) for row in rows]

    @staticmethod
    def get_reservation_by_id(reservation_id: int) -> Optional[Reservation]:
        """Получение брони по ID"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM reservations WHERE id = ?", (reservation_id,))
            row = cursor.fetchone()
            return ReservationRepository._row_to_reservation(row) if row else None

    @staticmethod
    def get_by_number(reservation_number: str) -> Optional[Reservation]:
        """Получение брони по номеру RV-..."""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM reservations WHERE reservation_number = ?",
                (reservation_number.strip().upper(),)
            )
            row = cursor.fetchone()
            return ReservationRepository._row_to_reservation(row) if row else None

    @staticmethod
    def update_status(reservation_id: int, status: str) -> bool:
        """Смена статуса брони"""
        now = datetime.now()
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE reservations
                SET status = ?, updated_at = ?,
                    completed_at = CASE WHEN ? = 'completed' THEN ? ELSE completed_at END
                WHERE id = ?
            """, (status, _ts(now), status, _ts(now), reservation_id))
            return cursor.rowcount > 0

    @staticmethod
    def update_fields(reservation_id: int, **fields) -> bool:
        """Частичное обновление брони администратором"""
        unknown = set(fields) - set(ReservationRepository.EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Нельзя менять поля: {', '.join(sorted(unknown))}")
        if not fields:
            return False

        if 'selected_seats' in fields:
            fields['selected_seats'] = json.dumps(sorted(fields['selected_seats']))
        fields['updated_at'] = _ts(datetime.now())

        assignments = ', '.join(f"{name} = ?" for name in fields)
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE reservations SET {assignments} WHERE id = ?",
                (*fields.values(), reservation_id)
            )
            return cursor.rowcount > 0

    @staticmethod
    def mark_payment_received(reservation_id: int) -> bool:
        return ReservationRepository.update_fields(reservation_id, payment_status='received')

    @staticmethod
    def delete_reservation(reservation_id: int) -> bool:
        """Безвозвратное удаление брони"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM reservations WHERE id = ?", (reservation_id,))
            return cursor.rowcount > 0

    @staticmethod
    def complete_past(today: str) -> int:
        """Подтверждённые брони прошедших дней переводятся в completed"""
        now = _ts(datetime.now())
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE reservations
                SET status = 'completed', completed_at = ?, updated_at = ?
                WHERE status = 'confirmed' AND date < ?
            """, (now, now, today))
            return cursor.rowcount

    @staticmethod
    def _row_to_reservation(row) -> Reservation:
        """Преобразование строки БД в объект Reservation"""
        return Reservation(
            id=row['id'],
            reservation_number=row['reservation_number'],
            boat_id=row['boat_id'],
            date=row['date'],
            time_slot_id=str(row['time_slot_id']),
            time_slot_display=row['time_slot_display'] or '',
            tour_type=row['tour_type'],
            is_private_tour=bool(row['is_private_tour']),
            selected_seats=json.loads(row['selected_seats'] or '[]'),
            user_id=row['user_id'],
            user_name=row['user_name'],
            user_surname=row['user_surname'] or '',
            user_phone=row['user_phone'],
            user_email=row['user_email'] or '',
            adult_count=row['adult_count'],
            child_count=row['child_count'],
            baby_count=row['baby_count'],
            total_people=row['total_people'],
            total_price=row['total_price'],
            status=row['status'],
            payment_status=row['payment_status'],
            created_at=_parse_ts(row['created_at']),
            updated_at=_parse_ts(row['updated_at']),
            completed_at=_parse_ts(row['completed_at'])
        )


class BoatRepository:
    """Репозиторий для работы с лодками"""

    @staticmethod
    def get_active_boats() -> List[Boat]:
        """Получение всех активных лодок"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM boats WHERE is_active = 1 ORDER BY id")
            rows = cursor.fetchall()
            return [BoatRepository._row_to_boat(row) for row in rows]

    @staticmethod
    def get_boat_by_id(boat_id: int) -> Optional[Boat]:
        """Получение лодки по ID"""
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM boats WHERE id = ?", (boat_id,))
            row = cursor.fetchone()
            return BoatRepository._row_to_boat(row) if row else None

    @staticmethod
    def _row_to_boat(row) -> Boat:
        return Boat(
            id=row['id'],
            name=row['name'],
            code=row['code'],
            capacity=row['capacity'],
            seat_layout=row['seat_layout'],
            time_slots=[TimeSlot.from_dict(slot) for slot in json.loads(row['time_slots'] or '[]')],
            scheduled_time_slots=[
                ScheduledTimeSlots.from_dict(schedule)
                for schedule in json.loads(row['scheduled_time_slots'] or '[]')
            ],
            start_date=row['start_date'],
            end_date=row['end_date'],
            is_active=bool(row['is_active'])
        )


class CustomTourRepository:
    """Туры, настроенные администратором"""

    @staticmethod
    def get_active_tours() -> List[CustomTour]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM custom_tours WHERE is_active = 1 ORDER BY name")
            rows = cursor.fetchall()
            return [CustomTourRepository._row_to_tour(row) for row in rows]

    @staticmethod
    def get_tour_by_id(tour_id: str) -> Optional[CustomTour]:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM custom_tours WHERE id = ?", (tour_id,))
            row = cursor.fetchone()
            return CustomTourRepository._row_to_tour(row) if row else None

    @staticmethod
    def _row_to_tour(row) -> CustomTour:
        return CustomTour(
            id=row['id'],
            name=row['name'],
            price=row['price'],
            capacity=row['capacity'],
            is_active=bool(row['is_active']),
            duration=row['duration'] or ''
        )


def phone_variants(phone: str) -> List[str]:
    """
    Варианты номера для поиска в чёрном списке: только цифры,
    с ведущим нулём и без него. Номера короче 10 цифр не ищутся.
    """
    digits = re.sub(r'\D', '', phone or '')
    if len(digits) < 10:
        return []
    if digits.startswith('0'):
        return [digits, digits[1:]]
    return ['0' + digits, digits]


class BlacklistRepository:
    """Чёрный список телефонов"""

    @staticmethod
    def is_blacklisted(phone: str) -> bool:
        return BlacklistRepository.get_entry(phone) is not None

    @staticmethod
    def get_entry(phone: str) -> Optional[BlacklistEntry]:
        variants = phone_variants(phone)
        if not variants:
            return None

        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM blacklist WHERE phone IN (?, ?)",
                (variants[0], variants[1])
            )
            row = cursor.fetchone()
            if row:
                return BlacklistEntry(
                    id=row['id'],
                    phone=row['phone'],
                    name=row['name'] or '',
                    reason=row['reason'] or '',
                    added_at=_parse_ts(row['added_at'])
                )
            return None

    @staticmethod
    def add(phone: str, name: str = '', reason: str = '') -> bool:
        """Добавить номер (хранится без ведущего нуля)"""
        variants = phone_variants(phone)
        if not variants or BlacklistRepository.is_blacklisted(phone):
            return False

        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO blacklist (phone, name, reason, added_at) VALUES (?, ?, ?, ?)",
                (variants[1], name, reason, _ts(datetime.now()))
            )
            return cursor.rowcount > 0

    @staticmethod
    def remove(phone: str) -> bool:
        variants = phone_variants(phone)
        if not variants:
            return False

        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM blacklist WHERE phone IN (?, ?)", (variants[0], variants[1]))
            return cursor.rowcount > 0

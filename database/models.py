"""
Модели данных для работы с БД
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


ACTIVE_STATUSES = ('pending', 'confirmed')
RESERVATION_STATUSES = ('pending', 'confirmed', 'cancelled', 'completed')

# Встроенные типы туров
NORMAL_TOUR = 'normal'
PRIVATE_TOUR = 'private'
FISHING_SWIMMING_TOUR = 'fishing-swimming'
BUILTIN_EXCLUSIVE_TOURS = (PRIVATE_TOUR, FISHING_SWIMMING_TOUR)


@dataclass
class TimeSlot:
    """Временной слот выхода лодки"""
    start: str  # "HH:MM"
    end: str    # "HH:MM"
    display_name: str = ''
    bait_warning: bool = False

    @property
    def display(self) -> str:
        return f"{self.start} - {self.end}"

    def to_dict(self) -> dict:
        return {
            'start': self.start,
            'end': self.end,
            'displayName': self.display_name,
            'baitWarning': self.bait_warning,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'TimeSlot':
        return cls(
            start=data['start'],
            end=data['end'],
            display_name=data.get('displayName', ''),
            bait_warning=bool(data.get('baitWarning', False)),
        )


@dataclass
class ScheduledTimeSlots:
    """Набор слотов, действующий начиная с даты effective_date"""
    effective_date: str  # YYYY-MM-DD
    time_slots: List[TimeSlot]

    def to_dict(self) -> dict:
        return {
            'effectiveDate': self.effective_date,
            'timeSlots': [slot.to_dict() for slot in self.time_slots],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ScheduledTimeSlots':
        return cls(
            effective_date=data['effectiveDate'],
            time_slots=[TimeSlot.from_dict(slot) for slot in data.get('timeSlots', [])],
        )


@dataclass
class Boat:
    """Модель лодки"""
    id: int
    name: str
    code: str  # короткая метка для кодов мест (T1, T2, ...)
    capacity: int = 12
    seat_layout: str = 'single'  # single, double
    time_slots: List[TimeSlot] = field(default_factory=list)
    scheduled_time_slots: List[ScheduledTimeSlots] = field(default_factory=list)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_active: bool = True

    def time_slots_for(self, date: str) -> List[TimeSlot]:
        """
        Слоты, действующие на дату.
        Берётся самое свежее расписание с effective_date <= date,
        иначе базовый список time_slots.
        """
        schedules = sorted(
            self.scheduled_time_slots,
            key=lambda schedule: schedule.effective_date,
            reverse=True
        )
        for schedule in schedules:
            if schedule.effective_date <= date:
                return schedule.time_slots
        return self.time_slots


@dataclass
class CustomTour:
    """Тур, настроенный администратором (всегда занимает всю лодку)"""
    id: str
    name: str
    price: int
    capacity: int
    is_active: bool = True
    duration: str = ''


@dataclass
class Reservation:
    """Модель бронирования"""
    id: Optional[int]
    reservation_number: str
    boat_id: int
    date: str  # YYYY-MM-DD, локальная календарная дата
    time_slot_id: str
    tour_type: str
    selected_seats: List[int]
    user_id: Optional[int]
    user_name: str
    user_phone: str
    created_at: datetime
    time_slot_display: str = ''
    is_private_tour: bool = False
    user_surname: str = ''
    user_email: str = ''
    adult_count: int = 0
    child_count: int = 0
    baby_count: int = 0
    total_people: int = 0
    total_price: float = 0
    status: str = 'pending'  # pending, confirmed, cancelled, completed
    payment_status: str = 'waiting'  # waiting, received
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        """Учитывается ли бронь при расчёте занятости"""
        return self.status in ACTIVE_STATUSES

    @property
    def is_exclusive(self) -> bool:
        """Бронь занимает всю лодку"""
        return self.is_private_tour or self.tour_type in BUILTIN_EXCLUSIVE_TOURS

    @property
    def full_name(self) -> str:
        return f"{self.user_name} {self.user_surname}".strip()


@dataclass
class BlacklistEntry:
    """Телефон в чёрном списке"""
    id: Optional[int]
    phone: str
    name: str
    reason: str
    added_at: datetime

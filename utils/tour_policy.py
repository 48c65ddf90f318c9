"""
Правила типов туров.

Тип тура - либо обычный (места выбираются поштучно), либо эксклюзивный
(private, fishing-swimming или тур из реестра администратора), который
занимает всю лодку на слот.
"""
from dataclasses import dataclass
from datetime import date as date_type
from typing import Iterable, List, Optional, Sequence

from config import settings
from database.models import (
    BUILTIN_EXCLUSIVE_TOURS, FISHING_SWIMMING_TOUR, NORMAL_TOUR, PRIVATE_TOUR,
    Boat, CustomTour, Reservation, TimeSlot
)
from utils.availability import fullness_for_all_slots
from utils.errors import ConfigurationAbsentError
from utils.time_utils import crosses_midnight, local_today, normalize_date_str, parse_hour, to_date_str


BAIT_CONFIRMATION = 'bait'
OVERNIGHT_CONFIRMATION = 'overnight'

BUILTIN_TOUR_NAMES = {
    NORMAL_TOUR: 'Обычный тур',
    PRIVATE_TOUR: 'Закрытый тур (вся лодка)',
    FISHING_SWIMMING_TOUR: 'Рыбалка + купание',
}


@dataclass(frozen=True)
class TourType:
    """Разрешённый тип тура"""
    id: str
    name: str
    exclusive: bool
    capacity: Optional[int] = None
    price: Optional[int] = None
    custom: bool = False

    def party_size(self, boat_capacity: int) -> int:
        """Сколько человек записывается на эксклюзивный тур"""
        return self.capacity or boat_capacity


def _registry_lookup(tour_type_id: str, registry: Iterable[CustomTour]) -> Optional[CustomTour]:
    for tour in registry:
        if tour.id == tour_type_id:
            return tour
    return None


def resolve_tour_type(tour_type_id: str, registry: Iterable[CustomTour]) -> TourType:
    """
    Тип тура по идентификатору.
    Неизвестный или выключенный тур из реестра - ConfigurationAbsentError.
    """
    if tour_type_id == NORMAL_TOUR:
        return TourType(id=NORMAL_TOUR, name=BUILTIN_TOUR_NAMES[NORMAL_TOUR], exclusive=False)

    if tour_type_id in BUILTIN_EXCLUSIVE_TOURS:
        return TourType(id=tour_type_id, name=BUILTIN_TOUR_NAMES[tour_type_id], exclusive=True)

    custom = _registry_lookup(tour_type_id, registry)
    if custom is None or not custom.is_active:
        raise ConfigurationAbsentError("Этот тур сейчас недоступен, выберите другой")

    return TourType(
        id=custom.id,
        name=custom.name,
        exclusive=True,
        capacity=custom.capacity,
        price=custom.price,
        custom=True
    )


def is_exclusive(tour_type_id: str, registry: Iterable[CustomTour]) -> bool:
    """private, fishing-swimming и любой тур из реестра занимают всю лодку"""
    if tour_type_id == NORMAL_TOUR:
        return False
    if tour_type_id in BUILTIN_EXCLUSIVE_TOURS:
        return True
    return _registry_lookup(tour_type_id, registry) is not None


def required_party_size(tour_type_id: str, registry: Iterable[CustomTour],
                        adults: int = 0, children: int = 0,
                        default_capacity: int = None) -> int:
    """
    Сколько мест нужно занять.
    Для обычного тура - взрослые + дети (младенцы мест не занимают).
    """
    default_capacity = default_capacity or settings.DEFAULT_CAPACITY
    if tour_type_id == NORMAL_TOUR:
        return adults + children

    custom = _registry_lookup(tour_type_id, registry)
    if custom is not None:
        return custom.capacity
    return default_capacity


def is_date_in_boat_range(date: str, boat: Boat) -> bool:
    if boat.start_date and date < boat.start_date:
        return False
    if boat.end_date and date > boat.end_date:
        return False
    return True


def can_select_date(date: str, boat: Boat, reservations_for_date: Iterable[Reservation],
                    tour: TourType, today: date_type = None) -> bool:
    """
    Можно ли выбрать дату.
    Прошедшие даты и даты вне сезона лодки запрещены всегда.
    Эксклюзивному туру нужен полностью пустой день, обычному - хотя бы один
    не заполненный слот.
    """
    today = to_date_str(today or local_today())
    if date < today:
        return False
    if not is_date_in_boat_range(date, boat):
        return False

    slots = boat.time_slots_for(date)
    if not slots:
        return False

    reservations = [
        r for r in reservations_for_date
        if r.boat_id == boat.id and normalize_date_str(r.date) == date and r.is_active
    ]
    if tour.exclusive:
        return not reservations

    fullness = fullness_for_all_slots(boat, date, reservations)
    return any(value < 1 for value in fullness.values())


def can_select_slot(tour: TourType, fullness: float, threshold: float = None) -> bool:
    """
    Эксклюзивный тур - только в пустой слот.
    Обычный - пока слот заполнен меньше порога.
    """
    if threshold is None:
        threshold = settings.NEAR_FULL_THRESHOLD
    if tour.exclusive:
        return fullness == 0
    return fullness < threshold


def requires_overnight_confirmation(slot_start: str, slot_end: str) -> bool:
    """Слот через полночь или ранний ночной выход"""
    if crosses_midnight(slot_start, slot_end):
        return True
    hour = parse_hour(slot_start)
    return settings.OVERNIGHT_START_HOUR <= hour < settings.OVERNIGHT_END_HOUR


def requires_bait_warning_confirmation(slot: TimeSlot) -> bool:
    return bool(slot.bait_warning)


def required_confirmations(slot: TimeSlot) -> List[str]:
    """Подтверждения для слота в порядке показа: сначала наживка, потом ночь"""
    kinds = []
    if requires_bait_warning_confirmation(slot):
        kinds.append(BAIT_CONFIRMATION)
    if requires_overnight_confirmation(slot.start, slot.end):
        kinds.append(OVERNIGHT_CONFIRMATION)
    return kinds


def next_confirmation(slot: TimeSlot, confirmed: Sequence[str]) -> Optional[str]:
    """Следующее неподтверждённое предупреждение или None"""
    for kind in required_confirmations(slot):
        if kind not in confirmed:
            return kind
    return None


def available_tour_types(registry: Iterable[CustomTour]) -> List[TourType]:
    """Встроенные типы и активные туры из реестра для меню выбора"""
    tours = [resolve_tour_type(tour_id, []) for tour_id in BUILTIN_TOUR_NAMES]
    for custom in registry:
        if custom.is_active:
            tours.append(resolve_tour_type(custom.id, [custom]))
    return tours

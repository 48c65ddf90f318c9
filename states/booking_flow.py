"""
Мастер бронирования: черновик и переходы между шагами.

Порядок шагов:
    tour_type -> party_size (только обычный тур) -> date -> slot -> seats
    -> contact -> submitted

Каждый переход проверяет свои условия и при ошибке бросает ValidationError,
не меняя черновик. Возврат на более ранний шаг стирает всё, что было выбрано
на последующих шагах. Черновик сериализуется в dict и хранится в FSMContext.
"""
from dataclasses import asdict, dataclass, field, fields
from datetime import date as date_type
from typing import Iterable, List, Optional

from database.models import Boat, Reservation
from utils.availability import fullness_for_slot
from utils.errors import ConfigurationAbsentError, ConfirmationRequiredError, ValidationError
from utils.seats import all_seats, is_valid_seat, occupied_seats
from utils.time_utils import local_today, normalize_date_str, to_date_str
from utils.tour_policy import (
    TourType, can_select_date, can_select_slot, is_date_in_boat_range, required_confirmations
)


TOUR_TYPE = 'tour_type'
PARTY_SIZE = 'party_size'
DATE = 'date'
SLOT = 'slot'
SEATS = 'seats'
CONTACT = 'contact'
SUBMITTED = 'submitted'

STEPS = [TOUR_TYPE, PARTY_SIZE, DATE, SLOT, SEATS, CONTACT, SUBMITTED]

# Поля черновика, которые заполняются на каждом шаге
STEP_FIELDS = {
    TOUR_TYPE: ('tour_type', 'tour_name', 'exclusive', 'tour_capacity'),
    PARTY_SIZE: ('adults', 'children', 'babies'),
    DATE: ('date',),
    SLOT: ('slot_id', 'slot_display', 'confirmations', 'occupied'),
    SEATS: ('seats',),
    CONTACT: ('name', 'surname', 'phone', 'email'),
    SUBMITTED: ('reservation_id', 'reservation_number'),
}


@dataclass
class BookingDraft:
    """Незавершённое бронирование"""
    boat_id: int
    step: str = TOUR_TYPE
    revision: int = 0
    tour_type: Optional[str] = None
    tour_name: str = ''
    exclusive: bool = False
    tour_capacity: Optional[int] = None
    adults: int = 0
    children: int = 0
    babies: int = 0
    date: Optional[str] = None
    slot_id: Optional[str] = None
    slot_display: str = ''
    confirmations: List[str] = field(default_factory=list)
    occupied: List[int] = field(default_factory=list)
    seats: List[int] = field(default_factory=list)
    name: str = ''
    surname: str = ''
    phone: str = ''
    email: str = ''
    reservation_id: Optional[int] = None
    reservation_number: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'BookingDraft':
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


_DEFAULTS = BookingDraft(boat_id=0)


def _step_index(step: str) -> int:
    return STEPS.index(step)


class BookingFlow:
    """Переходы мастера над черновиком конкретной лодки"""

    def __init__(self, draft: BookingDraft, boat: Boat):
        if draft.boat_id != boat.id:
            raise ValueError("Черновик относится к другой лодке")
        self.draft = draft
        self.boat = boat

    @classmethod
    def start(cls, boat: Boat) -> 'BookingFlow':
        return cls(BookingDraft(boat_id=boat.id), boat)

    # --- Состояние ---

    @property
    def step(self) -> str:
        return self.draft.step

    @property
    def tour(self) -> Optional[TourType]:
        if self.draft.tour_type is None:
            return None
        return TourType(
            id=self.draft.tour_type,
            name=self.draft.tour_name,
            exclusive=self.draft.exclusive,
            capacity=self.draft.tour_capacity
        )

    @property
    def required_seats(self) -> int:
        """Сколько мест должно быть выбрано"""
        if self.draft.exclusive:
            return self.boat.capacity
        return self.draft.adults + self.draft.children

    @property
    def party_size(self) -> int:
        """Сколько человек записывается (с младенцами)"""
        if self.draft.exclusive:
            return self.tour.party_size(self.boat.capacity)
        return self.draft.adults + self.draft.children + self.draft.babies

    @property
    def contact_complete(self) -> bool:
        return bool(self.draft.name and self.draft.surname and self.draft.phone)

    def _require_reached(self, step: str):
        current = _step_index(self.draft.step)
        if current < _step_index(step):
            raise ValidationError("Сначала завершите предыдущие шаги")
        if self.draft.step == SUBMITTED:
            raise ValidationError("Бронирование уже отправлено, начните новое")

    def _clear_after(self, step: str):
        """Сброс всего, что выбрано после шага step"""
        for later in STEPS[_step_index(step) + 1:]:
            for name in STEP_FIELDS[later]:
                default = getattr(_DEFAULTS, name)
                setattr(self.draft, name, list(default) if isinstance(default, list) else default)

    def _move_to(self, step: str):
        self.draft.step = step

    # --- Переходы ---

    def choose_tour_type(self, tour: TourType):
        """Выбор типа тура. Для эксклюзивного тура шаг состава группы пропускается"""
        if self.draft.step == SUBMITTED:
            raise ValidationError("Бронирование уже отправлено, начните новое")

        self._clear_after(TOUR_TYPE)
        self.draft.revision += 1
        self.draft.tour_type = tour.id
        self.draft.tour_name = tour.name
        self.draft.exclusive = tour.exclusive
        self.draft.tour_capacity = tour.capacity

        if tour.exclusive:
            self.draft.adults = tour.party_size(self.boat.capacity)
            self.draft.children = 0
            self.draft.babies = 0
            self._move_to(DATE)
        else:
            self._move_to(PARTY_SIZE)

    def set_party_size(self, adults: int, children: int = 0, babies: int = 0):
        """Состав группы для обычного тура: места нужны взрослым и детям"""
        self._require_reached(PARTY_SIZE)
        if self.draft.exclusive:
            raise ValidationError("Для этого тура состав группы задаётся автоматически")
        if adults < 0 or children < 0 or babies < 0:
            raise ValidationError("Количество не может быть отрицательным")
        if adults + children < 1:
            raise ValidationError("Нужен хотя бы один взрослый или ребёнок")
        if adults + children > self.boat.capacity:
            raise ValidationError(f"На лодке всего {self.boat.capacity} мест")

        self._clear_after(PARTY_SIZE)
        self.draft.revision += 1
        self.draft.adults = adults
        self.draft.children = children
        self.draft.babies = babies
        self._move_to(DATE)

    def select_date(self, date: str, reservations_for_date: Iterable[Reservation],
                    today: date_type = None):
        """Выбор даты. Новый выбор сбрасывает слот и места"""
        self._require_reached(DATE)
        date = normalize_date_str(date)

        if not self.boat.time_slots_for(date):
            raise ConfigurationAbsentError("Для этой лодки не настроены слоты на выбранную дату")

        reservations_for_date = list(reservations_for_date)
        if not can_select_date(date, self.boat, reservations_for_date, self.tour, today=today):
            raise ValidationError(self._date_rejection_reason(date, today))

        self._clear_after(DATE)
        self.draft.revision += 1
        self.draft.date = date
        self._move_to(SLOT)

    def _date_rejection_reason(self, date: str, today: date_type = None) -> str:
        if date < to_date_str(today or local_today()):
            return "Нельзя бронировать прошедшие даты"
        if not is_date_in_boat_range(date, self.boat):
            return "Лодка не работает в эту дату"
        if self.draft.exclusive:
            return "Для эксклюзивного тура нужен полностью свободный день"
        return "На эту дату все слоты заняты"

    def _active_on_date(self, reservations: Iterable[Reservation]) -> List[Reservation]:
        return [
            r for r in reservations
            if r.is_active and r.boat_id == self.boat.id
            and normalize_date_str(r.date) == self.draft.date
        ]

    def slot_rejection(self, slot_id: str, reservations_for_date: Iterable[Reservation]) -> Optional[str]:
        """
        Причина, по которой слот нельзя выбрать, или None.
        Эксклюзивному туру нужен день без броней, обычному - слот ниже порога
        заполненности, где хватает свободных мест на всю группу.
        """
        slot_id = str(slot_id)
        on_date = self._active_on_date(reservations_for_date)
        if self.draft.exclusive and on_date:
            return "Для эксклюзивного тура нужен полностью свободный день"

        in_slot = [r for r in on_date if str(r.time_slot_id) == slot_id]
        fullness = fullness_for_slot(
            self.boat.id, self.draft.date, slot_id, in_slot, self.boat.capacity
        )
        if not can_select_slot(self.tour, fullness):
            if self.draft.exclusive:
                return "Для эксклюзивного тура слот должен быть полностью свободен"
            return "Этот слот заполнен, выберите другой"

        if not self.draft.exclusive:
            taken = occupied_seats(in_slot)
            free = len([seat for seat in all_seats(self.boat.capacity) if seat not in taken])
            if free < self.required_seats:
                return f"В этом слоте свободно мест: {free}, а нужно {self.required_seats}"
        return None

    def selectable_slots(self, reservations_for_date: Iterable[Reservation]) -> List[str]:
        """Слоты выбранной даты, которые можно выбрать"""
        reservations_for_date = list(reservations_for_date)
        slots = self.boat.time_slots_for(self.draft.date)
        return [
            str(index) for index in range(len(slots))
            if self.slot_rejection(str(index), reservations_for_date) is None
        ]

    def select_slot(self, slot_id: str, reservations_for_date: Iterable[Reservation],
                    confirmed: Iterable[str] = ()):
        """
        Выбор слота по броням лодки на выбранную дату. Эксклюзивный тур сразу
        получает все места и переходит к контактам, обычный - к выбору мест.
        Неподтверждённые предупреждения - ConfirmationRequiredError.
        """
        self._require_reached(SLOT)
        slot_id = str(slot_id)
        slots = self.boat.time_slots_for(self.draft.date)
        if not slot_id.isdigit() or int(slot_id) >= len(slots):
            raise ValidationError("Такого слота нет")
        slot = slots[int(slot_id)]

        reservations_for_date = list(reservations_for_date)
        reason = self.slot_rejection(slot_id, reservations_for_date)
        if reason:
            raise ValidationError(reason)

        confirmed = list(confirmed)
        missing = [kind for kind in required_confirmations(slot) if kind not in confirmed]
        if missing:
            raise ConfirmationRequiredError(missing)

        self._clear_after(SLOT)
        self.draft.revision += 1
        self.draft.slot_id = slot_id
        self.draft.slot_display = slot.display
        self.draft.confirmations = required_confirmations(slot)
        self.draft.occupied = sorted(occupied_seats(
            r for r in self._active_on_date(reservations_for_date)
            if str(r.time_slot_id) == slot_id
        ))

        if self.draft.exclusive:
            self.draft.seats = all_seats(self.boat.capacity)
            self._move_to(CONTACT)
        else:
            self._move_to(SEATS)

    def toggle_seat(self, seat: int) -> bool:
        """
        Выбрать или снять место. Занятое место, место вне лодки и лишнее место
        не добавляются. Возвращает True, если выбор изменился.
        """
        if self.draft.step != SEATS:
            raise ValidationError("Сейчас нельзя выбирать места")

        if seat in self.draft.seats:
            self.draft.seats.remove(seat)
            return True
        if not is_valid_seat(seat, self.boat.capacity) or seat in self.draft.occupied:
            return False
        if len(self.draft.seats) >= self.required_seats:
            return False

        self.draft.seats.append(seat)
        self.draft.seats.sort()
        return True

    def confirm_seats(self):
        self._require_reached(SEATS)
        if self.draft.exclusive:
            return
        if len(self.draft.seats) != self.required_seats:
            raise ValidationError(
                f"Выберите {self.required_seats} мест (выбрано {len(self.draft.seats)})"
            )
        self._clear_after(SEATS)
        self._move_to(CONTACT)

    def set_contact(self, name: str, surname: str, phone: str, email: str = ''):
        """Контакты: имя, фамилия и телефон обязательны, email - нет"""
        self._require_reached(CONTACT)
        name, surname, phone = (name or '').strip(), (surname or '').strip(), (phone or '').strip()

        missing = [
            label for label, value in (('имя', name), ('фамилия', surname), ('телефон', phone))
            if not value
        ]
        if missing:
            raise ValidationError("Заполните: " + ", ".join(missing))
        if len(''.join(ch for ch in phone if ch.isdigit())) < 10:
            raise ValidationError("Введите корректный номер телефона")

        self.draft.name = name
        self.draft.surname = surname
        self.draft.phone = phone
        self.draft.email = (email or '').strip()

    def ensure_ready(self):
        """Черновик целиком согласован и может быть отправлен"""
        if self.draft.step != CONTACT:
            raise ValidationError("Бронирование ещё не заполнено")
        if not self.contact_complete:
            raise ValidationError("Заполните контактные данные")
        if len(self.draft.seats) != self.required_seats:
            raise ValidationError("Выбрано неверное количество мест")
        if len(set(self.draft.seats)) != len(self.draft.seats):
            raise ValidationError("Места не должны повторяться")

    def mark_submitted(self, reservation: Reservation):
        self.draft.reservation_id = reservation.id
        self.draft.reservation_number = reservation.reservation_number
        self._move_to(SUBMITTED)

    # --- Навигация ---

    def previous_step(self) -> str:
        """Куда ведёт кнопка "Назад" с текущего шага"""
        step = self.draft.step
        if step == CONTACT:
            return SLOT if self.draft.exclusive else SEATS
        if step == DATE and self.draft.exclusive:
            return TOUR_TYPE
        index = _step_index(step)
        return STEPS[max(index - 1, 0)]

    def go_back(self, step: str):
        """Возврат на более ранний шаг, всё выбранное позже стирается"""
        if _step_index(step) >= _step_index(self.draft.step):
            raise ValidationError("Можно вернуться только на предыдущие шаги")
        if step == PARTY_SIZE and self.draft.exclusive:
            step = TOUR_TYPE
        if step == SEATS and self.draft.exclusive:
            step = SLOT

        self._clear_after(step)
        self.draft.revision += 1
        self._move_to(step)

    def reset(self):
        """Новое бронирование с нуля"""
        self.draft = BookingDraft(boat_id=self.boat.id, revision=self.draft.revision + 1)

    # --- Данные о занятости ---

    def is_current(self, date: str, slot_id: str = None, revision: int = None) -> bool:
        """Относится ли ответ хранилища к текущему черновику"""
        if revision is not None and revision != self.draft.revision:
            return False
        if normalize_date_str(date) != self.draft.date:
            return False
        return slot_id is None or str(slot_id) == self.draft.slot_id

    def apply_occupancy(self, date: str, slot_id: str, reservations: Iterable[Reservation],
                        revision: int = None) -> bool:
        """
        Обновить занятые места слота. Устаревший ответ (другая дата, слот или
        ревизия черновика) отбрасывается. Выбранные места, которые успели
        занять, снимаются.
        """
        if not self.is_current(date, slot_id, revision):
            return False

        self.draft.occupied = sorted(occupied_seats(
            r for r in reservations
            if r.boat_id == self.boat.id
            and normalize_date_str(r.date) == self.draft.date
            and str(r.time_slot_id) == self.draft.slot_id
        ))
        if not self.draft.exclusive:
            self.draft.seats = [seat for seat in self.draft.seats if seat not in self.draft.occupied]
        return True

    def handle_conflict(self, fresh_reservations: Iterable[Reservation]):
        """
        После конфликта мест: обычный тур возвращается к выбору мест
        с обновлённой занятостью, эксклюзивный - к выбору даты.
        """
        fresh_reservations = list(fresh_reservations)
        if self.draft.exclusive:
            self.go_back(DATE)
            return

        self.go_back(SEATS)
        self.apply_occupancy(self.draft.date, self.draft.slot_id, fresh_reservations)

    def summary(self) -> dict:
        """Итог для экрана подтверждения"""
        return {
            'reservation_number': self.draft.reservation_number,
            'boat': self.boat.name,
            'tour': self.draft.tour_name,
            'date': self.draft.date,
            'slot': self.draft.slot_display,
            'seats': list(self.draft.seats),
            'people': self.party_size,
            'name': f"{self.draft.name} {self.draft.surname}".strip(),
            'phone': self.draft.phone,
            'email': self.draft.email,
        }

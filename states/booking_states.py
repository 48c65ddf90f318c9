"""
Состояния для FSM (Finite State Machine)
"""
from aiogram.fsm.state import State, StatesGroup


class BookingStates(StatesGroup):
    """Состояния процесса бронирования"""
    choosing_boat = State()
    choosing_tour = State()
    choosing_adults = State()
    choosing_children = State()
    choosing_babies = State()
    choosing_date = State()
    choosing_slot = State()
    choosing_seats = State()
    entering_name = State()
    entering_surname = State()
    entering_phone = State()
    entering_email = State()
    confirming = State()


class LookupStates(StatesGroup):
    """Поиск брони по номеру"""
    entering_number = State()

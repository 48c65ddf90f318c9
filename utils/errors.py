"""
Ошибки процесса бронирования
"""
from typing import Iterable, Sequence


class BookingError(Exception):
    """Базовая ошибка бронирования с сообщением для пользователя"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BookingError):
    """Шаг мастера не прошёл проверку, состояние не меняется"""


class ConfirmationRequiredError(ValidationError):
    """Слот требует явного подтверждения (наживка, ночной выход)"""

    def __init__(self, kinds: Sequence[str]):
        self.kinds = list(kinds)
        super().__init__("Требуется подтверждение: " + ", ".join(self.kinds))


class CapacityConflictError(BookingError):
    """Места заняты другим бронированием, пока пользователь оформлял заказ"""

    def __init__(self, message: str, conflicting_seats: Iterable[int] = ()):
        self.conflicting_seats = sorted(set(conflicting_seats))
        super().__init__(message)


class ConfigurationAbsentError(BookingError):
    """У лодки нет слотов или выбранный тур больше не активен"""


class StoreUnavailableError(BookingError):
    """Хранилище недоступно, операцию нужно повторить вручную"""

"""
Утилиты для работы с датами и расписанием.

Все даты, которые уходят в хранилище и приходят из него, - строки YYYY-MM-DD
в локальном календаре. Никаких переводов в UTC: день не должен "съезжать".
"""
import calendar
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple


DATE_FORMAT = '%Y-%m-%d'
WEEKDAYS = ['Пн', 'Вт', 'Ср', 'Чт', 'Пт', 'Сб', 'Вс']
MONTHS = [
    'Январь', 'Февраль', 'Март', 'Апрель', 'Май', 'Июнь',
    'Июль', 'Август', 'Сентябрь', 'Октябрь', 'Ноябрь', 'Декабрь'
]


def local_today() -> date:
    """Сегодняшняя дата по локальным часам"""
    return datetime.now().date()


def to_date_str(value: date) -> str:
    """date -> YYYY-MM-DD без учёта часового пояса"""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_date(date_str: str) -> date:
    """YYYY-MM-DD -> date"""
    return datetime.strptime(date_str, DATE_FORMAT).date()


def normalize_date_str(value) -> Optional[str]:
    """
    Приведение даты к YYYY-MM-DD.
    ISO-строки с временем обрезаются до даты как есть, без сдвига в UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_date_str(value.date())
    if isinstance(value, date):
        return to_date_str(value)
    value = str(value)
    if 'T' in value:
        value = value.split('T')[0]
    return value


def month_dates(year: int, month: int) -> List[str]:
    """Все даты месяца в формате YYYY-MM-DD"""
    days_in_month = calendar.monthrange(year, month)[1]
    return [to_date_str(date(year, month, day)) for day in range(1, days_in_month + 1)]


def month_grid(year: int, month: int) -> List[List[Optional[str]]]:
    """Недели месяца (Пн-Вс), пустые клетки - None"""
    return [
        [to_date_str(day) if day.month == month else None for day in week]
        for week in calendar.Calendar(firstweekday=0).monthdatescalendar(year, month)
    ]


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    """Сдвиг месяца на delta"""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def months_between(start: date, year: int, month: int) -> int:
    """Сколько месяцев от месяца даты start до (year, month)"""
    return (year - start.year) * 12 + (month - start.month)


def parse_hour(time_str: str) -> int:
    """Час из строки HH:MM"""
    return int(time_str.split(':')[0])


def crosses_midnight(start: str, end: str) -> bool:
    """Слот заканчивается на следующий день (20:00-02:00)"""
    return start > end


def format_date(value) -> str:
    """Форматирование даты"""
    if isinstance(value, str):
        value = parse_date(value)
    if isinstance(value, datetime):
        value = value.date()
    weekday = WEEKDAYS[value.weekday()]

    today = local_today()
    if value == today:
        return f"Сегодня ({weekday})"
    elif value == today + timedelta(days=1):
        return f"Завтра ({weekday})"
    else:
        return f"{value.strftime('%d.%m.%Y')} ({weekday})"


def format_month(year: int, month: int) -> str:
    return f"{MONTHS[month - 1]} {year}"


def format_datetime(dt: datetime) -> str:
    """Форматирование datetime для отображения"""
    return dt.strftime("%d.%m.%Y %H:%M")

"""
Конфигурация проекта
"""
import os
from dataclasses import dataclass
from typing import List


@dataclass
class Settings:
    """Настройки приложения"""
    # Telegram
    BOT_TOKEN: str = os.getenv('BOT_TOKEN', '')
    ADMIN_IDS: List[int] = None

    # База данных
    DB_PATH: str = os.getenv('DB_PATH', 'data/boat_tours.db')

    # Бизнес-правила
    DEFAULT_CAPACITY: int = 12
    # Обычный тур блокируется, когда слот заполнен на 90% и больше
    NEAR_FULL_THRESHOLD: float = float(os.getenv('NEAR_FULL_THRESHOLD', '0.9'))
    # Слоты, начинающиеся в [01:00, 07:00), требуют подтверждения ночного выхода
    OVERNIGHT_START_HOUR: int = 1
    OVERNIGHT_END_HOUR: int = 7
    CALENDAR_MONTHS_AHEAD: int = 6
    MAX_ADULTS: int = 12
    MAX_CHILDREN: int = 6
    MAX_BABIES: int = 4

    # Цены (TRY)
    PRICE_NORMAL: int = int(os.getenv('PRICE_NORMAL', '1500'))
    PRICE_PRIVATE: int = int(os.getenv('PRICE_PRIVATE', '15000'))
    PRICE_FISHING_SWIMMING: int = int(os.getenv('PRICE_FISHING_SWIMMING', '18000'))
    CHILD_PRICE_RATIO: float = 0.5

    # Планировщик
    COMPLETE_JOB_INTERVAL_MINUTES: int = 60

    def __post_init__(self):
        """Инициализация после создания объекта"""
        if not self.BOT_TOKEN:
            raise ValueError("BOT_TOKEN не установлен")

        # Парсинг ADMIN_IDS из переменной окружения
        if self.ADMIN_IDS is None:
            admin_ids_str = os.getenv('ADMIN_IDS', '')
            if admin_ids_str:
                self.ADMIN_IDS = [int(id.strip()) for id in admin_ids_str.split(',')]
            else:
                self.ADMIN_IDS = []

    def is_admin(self, user_id: int) -> bool:
        """Проверка, является ли пользователь администратором"""
        return user_id in self.ADMIN_IDS


# Глобальный экземпляр настроек
settings = Settings()

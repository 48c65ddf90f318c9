"""
Модуль для работы с базой данных SQLite
"""
import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Generator

from config import settings
from utils.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


def get_connection() -> sqlite3.Connection:
    """Получение подключения к БД"""
    conn = sqlite3.Connection(settings.DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Контекстный менеджер для работы с БД"""
    try:
        conn = get_connection()
    except sqlite3.Error as e:
        raise StoreUnavailableError("База данных недоступна") from e

    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        logger.error(f"Ошибка БД: {e}", exc_info=True)
        raise StoreUnavailableError("Ошибка при работе с базой данных") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _default_boats() -> list:
    """Лодки, создаваемые при первом запуске"""
    time_slots = [
        {'start': '07:00', 'end': '13:00', 'displayName': 'Утренний выход', 'baitWarning': False},
        {'start': '14:00', 'end': '20:00', 'displayName': 'Вечерний выход', 'baitWarning': True},
        {'start': '02:00', 'end': '06:00', 'displayName': 'Ночной выход', 'baitWarning': False},
    ]
    return [
        ('Лодка 1', 'T1', 12, 'single', json.dumps(time_slots)),
        ('Лодка 2', 'T2', 12, 'double', json.dumps(time_slots)),
    ]


def init_db():
    """Инициализация базы данных"""
    # Создание директории для БД, если не существует
    db_dir = os.path.dirname(settings.DB_PATH)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir)

    with get_db() as conn:
        cursor = conn.cursor()

        # Таблица лодок
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS boats (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                code TEXT NOT NULL,
                capacity INTEGER NOT NULL DEFAULT 12,
                seat_layout TEXT NOT NULL DEFAULT 'single',
                time_slots TEXT NOT NULL DEFAULT '[]',
                scheduled_time_slots TEXT NOT NULL DEFAULT '[]',
                start_date TEXT,
                end_date TEXT,
                is_active INTEGER DEFAULT 1
            )
        """)

        # Туры, настроенные администратором
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS custom_tours (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                price INTEGER NOT NULL DEFAULT 0,
                capacity INTEGER NOT NULL DEFAULT 12,
                duration TEXT DEFAULT '',
                is_active INTEGER DEFAULT 1
            )
        """)

        # Таблица бронирований
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reservations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                reservation_number TEXT NOT NULL,
                boat_id INTEGER NOT NULL,
                date TEXT NOT NULL,
                time_slot_id TEXT NOT NULL,
                time_slot_display TEXT DEFAULT '',
                tour_type TEXT NOT NULL DEFAULT 'normal',
                is_private_tour INTEGER DEFAULT 0,
                selected_seats TEXT NOT NULL DEFAULT '[]',
                user_id INTEGER,
                user_name TEXT NOT NULL,
                user_surname TEXT DEFAULT '',
                user_phone TEXT NOT NULL,
                user_email TEXT DEFAULT '',
                adult_count INTEGER DEFAULT 0,
                child_count INTEGER DEFAULT 0,
                baby_count INTEGER DEFAULT 0,
                total_people INTEGER DEFAULT 0,
                total_price REAL DEFAULT 0,
                status TEXT DEFAULT 'pending',
                payment_status TEXT DEFAULT 'waiting',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP,
                completed_at TIMESTAMP,
                FOREIGN KEY (boat_id) REFERENCES boats (id)
            )
        """)

        # Индексы для быстрого поиска
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_reservations_slot
            ON reservations(boat_id, date, time_slot_id, status)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_reservations_user
            ON reservations(user_id, status)
        """)
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_reservations_number
            ON reservations(reservation_number)
        """)

        # Чёрный список телефонов
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS blacklist (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                phone TEXT NOT NULL UNIQUE,
                name TEXT DEFAULT '',
                reason TEXT DEFAULT '',
                added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Проверка наличия лодок
        cursor.execute("SELECT COUNT(*) as count FROM boats")
        if cursor.fetchone()['count'] == 0:
            # Добавление лодок по умолчанию
            cursor.executemany(
                "INSERT INTO boats (name, code, capacity, seat_layout, time_slots) "
                "VALUES (?, ?, ?, ?, ?)",
                _default_boats()
            )
            logger.info("Созданы лодки по умолчанию")

        conn.commit()

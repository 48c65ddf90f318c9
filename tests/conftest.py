import os

os.environ.setdefault('BOT_TOKEN', '123456:test-token')
os.environ.setdefault('ADMIN_IDS', '1001,1002')

import pytest

from config import settings
from database.database import init_db


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Чистая БД с лодками по умолчанию"""
    monkeypatch.setattr(settings, 'DB_PATH', str(tmp_path / 'test.db'))
    init_db()
    return settings.DB_PATH

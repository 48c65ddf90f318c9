"""
Планировщик периодических задач
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from utils.errors import StoreUnavailableError
from utils.reservation_service import complete_past_reservations

logger = logging.getLogger(__name__)


async def complete_past_reservations_job():
    """Задача завершения подтверждённых броней прошедших дней"""
    try:
        complete_past_reservations()
    except StoreUnavailableError as e:
        logger.error(f"Ошибка при завершении прошедших броней: {e.message}", exc_info=True)


async def start_scheduler() -> AsyncIOScheduler:
    """Запуск планировщика задач"""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        complete_past_reservations_job,
        trigger=IntervalTrigger(minutes=settings.COMPLETE_JOB_INTERVAL_MINUTES),
        id='complete_past_reservations',
        name='Завершение прошедших броней',
        replace_existing=True
    )

    scheduler.start()
    logger.info("Планировщик задач запущен")

    return scheduler

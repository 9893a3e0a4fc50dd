"""Background job scheduler for check-in reminders."""
import logging
from datetime import date

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlmodel import Session

from guestlist.attendance.notifications import get_notifier
from guestlist.attendance.reminders import send_check_in_reminders
from guestlist.core.config import settings
from guestlist.core.database import engine

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def reminder_job():
    """Daily reminder job."""
    try:
        with Session(engine) as session:
            stats = send_check_in_reminders(session, get_notifier(), date.today())
            logger.info(f"Reminder run completed: {stats}")
    except Exception as e:
        logger.error(f"Reminder run failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    if not settings.reminders_enabled:
        logger.info("Check-in reminders disabled, scheduler not started")
        return
    scheduler.add_job(
        reminder_job,
        trigger=CronTrigger(hour=settings.reminder_hour),
        id="check_in_reminders",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started, reminders daily at {settings.reminder_hour}:00")


def shutdown_scheduler():
    """Graceful shutdown."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")

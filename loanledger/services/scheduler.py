"""Background scheduler for the daily overdue loan sweep."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from loanledger.core.config import settings
from loanledger.db.base import SessionLocal
from loanledger.services.loan import run_overdue_sweep

logger = logging.getLogger(__name__)

scheduler: AsyncIOScheduler | None = None

JOB_ID = "update_overdue_loans"


def run_scheduled_tasks() -> None:
    """Run the overdue sweep and notify administrators when loans were defaulted."""
    db = SessionLocal()
    try:
        result = run_overdue_sweep(db)

        if not result["defaulted"] or not settings.ADMIN_REPORT_EMAILS:
            return

        from loanledger.core.email import send_overdue_report
        send_overdue_report(
            to_emails=settings.ADMIN_REPORT_EMAILS,
            examined=result["examined"],
            defaulted_loans=result["defaulted"],
        )
    except Exception:
        db.rollback()
        logger.exception("Error in scheduled overdue sweep")
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Scheduler lifecycle helpers
# ---------------------------------------------------------------------------

def start_scheduler() -> None:
    """Create and start the background scheduler."""
    global scheduler
    interval = settings.OVERDUE_SWEEP_INTERVAL_MINUTES

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_scheduled_tasks,
        trigger=IntervalTrigger(minutes=interval),
        id=JOB_ID,
        name="Update overdue loans",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Background scheduler started with interval=%d minutes", interval)


def stop_scheduler() -> None:
    """Shut down the background scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
        scheduler = None


def reschedule_jobs(new_interval: int) -> None:
    """Change the sweep interval at runtime."""
    if not scheduler or not scheduler.running:
        raise RuntimeError("Scheduler is not running")

    trigger = IntervalTrigger(minutes=new_interval)
    scheduler.reschedule_job(JOB_ID, trigger=trigger)
    logger.info("Overdue sweep rescheduled to interval=%d minutes", new_interval)


def get_scheduler_status() -> dict:
    """Return current scheduler state for the status API."""
    if not scheduler or not scheduler.running:
        return {"running": False, "interval_minutes": None, "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    current_interval = settings.OVERDUE_SWEEP_INTERVAL_MINUTES
    job = scheduler.get_job(JOB_ID)
    if job and hasattr(job.trigger, "interval"):
        current_interval = int(job.trigger.interval.total_seconds() / 60)

    return {
        "running": True,
        "interval_minutes": current_interval,
        "jobs": jobs,
    }

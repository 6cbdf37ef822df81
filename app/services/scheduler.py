import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from app.config import settings
from app.database import SessionLocal
from app.services.loan_engine import LoanEngine
from app.utils.timezone import LOCAL_TZ

logger = logging.getLogger("scheduler_jobs")

OVERDUE_JOB_ID = "overdue_sweep_job"


def run_overdue_sweep(session_factory=SessionLocal) -> int:
    """Mark overdue loans in a fresh session; returns how many changed."""
    db = session_factory()
    try:
        changed = LoanEngine(db).sweep_overdue()
        return len(changed)
    except Exception as e:
        logger.error(f"Overdue sweep failed: {e}", exc_info=True)
        raise
    finally:
        db.close()


def create_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=LOCAL_TZ)
    scheduler.add_job(
        run_overdue_sweep,
        trigger=IntervalTrigger(minutes=settings.overdue_sweep_interval_minutes),
        id=OVERDUE_JOB_ID,
        name="Mark overdue loans",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=60 * 15,
    )
    return scheduler

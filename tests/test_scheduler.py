from datetime import datetime, timedelta, timezone

from app.models.loan import LoanStatus
from app.services.loan_engine import LoanEngine
from app.services.scheduler import OVERDUE_JOB_ID, create_scheduler, run_overdue_sweep


def test_run_overdue_sweep_marks_past_due_loans(db, session_factory, book, member):
    long_ago = datetime(2020, 1, 1, tzinfo=timezone.utc)
    loan = LoanEngine(db, clock=lambda: long_ago).create_loan(book.book_id, member.member_id)

    assert run_overdue_sweep(session_factory) == 1
    assert run_overdue_sweep(session_factory) == 0

    db.expire_all()
    assert LoanEngine(db).get_loan(loan.loan_id).status == LoanStatus.OVERDUE


def test_scheduler_registers_sweep_job():
    scheduler = create_scheduler()

    job = scheduler.get_job(OVERDUE_JOB_ID)

    assert job is not None
    assert job.trigger.interval == timedelta(minutes=60)
    assert not scheduler.running

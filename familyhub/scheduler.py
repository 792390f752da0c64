"""
Background job scheduler using APScheduler.

This module sets up and manages the background scheduler for familyhub.
The only recurring job is the nightly ledger reconciliation.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
import logging
import atexit

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = BackgroundScheduler()


def init_scheduler(app):
    """
    Initialize and start the background scheduler.

    Args:
        app: Flask application instance
    """
    if not app.config.get('SCHEDULER_ENABLED', True):
        logger.info("Background scheduler disabled via configuration")
        return

    # Don't run scheduler in testing mode
    if app.config.get('TESTING', False):
        logger.info("Background scheduler disabled in testing mode")
        return

    if scheduler.running:
        logger.info("Background scheduler already running")
        return

    from familyhub.jobs.ledger_audit import audit_ledger_balances

    timezone = app.config.get('SCHEDULER_TIMEZONE', 'UTC')

    def with_app_context(func):
        """Wrap job function to run within Flask app context."""
        def wrapper():
            with app.app_context():
                func()
        wrapper.__name__ = func.__name__
        return wrapper

    # Reconcile ledger balances nightly at 02:00
    scheduler.add_job(
        with_app_context(audit_ledger_balances),
        trigger=CronTrigger(hour=2, minute=0, timezone=timezone),
        id='audit_ledger_balances',
        name='Reconcile member ledger balances',
        replace_existing=True
    )

    scheduler.start()
    logger.info("Background scheduler started with %d jobs", len(scheduler.get_jobs()))

    atexit.register(shutdown_scheduler)


def shutdown_scheduler():
    """Shutdown the background scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")


def run_job_now(job_id: str):
    """
    Run a scheduled job immediately (useful for testing/admin).

    Returns:
        bool: True if job was found and triggered, False otherwise
    """
    job = scheduler.get_job(job_id)
    if job:
        job.func()
        return True
    return False


def get_job_status():
    """
    Get status of all scheduled jobs.

    Returns:
        list: List of job status dictionaries
    """
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        })
    return jobs

"""
Background schedule for the SLA monitor.

- hourly (minute 0): critical rules only
- daily 09:00 UTC: full sweep

Both jobs use max_instances=1 and coalesce=True, so a trigger that fires
while the previous run is still going is skipped rather than queued.
Each run opens its own session and builds a fresh SlaMonitor, which is how
threshold updates take effect without a restart.
"""
import logging
from typing import List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from fulfillment.config import Settings, get_settings
from fulfillment.database import SessionLocal
from fulfillment.services.monitoring_service import CRITICAL_RULES, MonitorRunResult, SlaMonitor

logger = logging.getLogger(__name__)

CRITICAL_JOB_ID = "sla_monitor_critical"
FULL_SWEEP_JOB_ID = "sla_monitor_full_sweep"

_scheduler: Optional[BackgroundScheduler] = None


def run_monitor(rules: Optional[List] = None, session_factory=SessionLocal) -> MonitorRunResult:
    db = session_factory()
    try:
        return SlaMonitor(db).run(rules=rules)
    finally:
        db.close()


def _job_critical_checks():
    result = run_monitor(rules=CRITICAL_RULES)
    logger.info(f"[SCHEDULER] Critical checks done alerts={result.alerts_created} errors={list(result.rule_errors)}")


def _job_full_sweep():
    result = run_monitor()
    logger.info(f"[SCHEDULER] Daily sweep done alerts={result.alerts_created} errors={list(result.rule_errors)}")


def build_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")
    job_defaults = {"max_instances": 1, "coalesce": True, "replace_existing": True}
    scheduler.add_job(_job_critical_checks, "cron", minute=0, id=CRITICAL_JOB_ID, **job_defaults)
    scheduler.add_job(_job_full_sweep, "cron", hour=9, minute=0, id=FULL_SWEEP_JOB_ID, **job_defaults)
    return scheduler


def init_scheduler(settings: Optional[Settings] = None) -> Optional[BackgroundScheduler]:
    global _scheduler
    settings = settings or get_settings()
    if not settings.ENABLE_MONITOR_SCHEDULER:
        logger.info("[SCHEDULER] Monitor scheduler disabled (ENABLE_MONITOR_SCHEDULER=false)")
        return None
    if _scheduler is not None:
        return _scheduler

    _scheduler = build_scheduler()
    _scheduler.start()
    logger.info("[SCHEDULER] Monitor scheduler started (hourly critical, daily 09:00 UTC sweep)")
    return _scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("[SCHEDULER] Monitor scheduler stopped")

"""
Recurring wake timer built on APScheduler
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import AlarmConfig
from .stores import ConfigStore

logger = logging.getLogger(__name__)

ALARM_JOB_ID = "wake_alarm"


def should_fire_on(config: Optional[AlarmConfig], moment: datetime) -> bool:
    """Whether an alarm with ``config`` is due on ``moment``'s weekday"""
    if config is None or not config.enabled:
        return False
    return config.is_scheduled_on(moment.weekday())


def next_fire_time(config: Optional[AlarmConfig], now: datetime) -> Optional[datetime]:
    """
    Next instant the alarm would sound.

    Scans today and the following seven days. Today only qualifies if the
    wake time is still ahead of ``now``.
    """
    if config is None or not config.enabled:
        return None

    hour, minute = config.hour_minute
    for offset in range(0, 8):
        day = now + timedelta(days=offset)
        if not config.is_scheduled_on(day.weekday()):
            continue
        candidate = day.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate > now:
            return candidate
    return None


class AlarmScheduler:
    """Owns the single recurring wake job.

    The job is a daily cron at the configured hour:minute. Whether a given
    day actually sounds is decided at fire time by the pipeline, which
    re-reads the configuration.
    """

    def __init__(self, config_store: ConfigStore, pipeline, timezone: Optional[str] = None,
                 scheduler: Optional[BackgroundScheduler] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.config_store = config_store
        self.pipeline = pipeline
        self.timezone = timezone
        if scheduler is None:
            scheduler = BackgroundScheduler(timezone=timezone) if timezone else BackgroundScheduler()
        self._scheduler = scheduler
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="alarm-test")
        self._lock = threading.Lock()

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")
        self._executor.shutdown(wait=wait)

    @property
    def job(self):
        return self._scheduler.get_job(ALARM_JOB_ID)

    @property
    def next_run_time(self) -> Optional[datetime]:
        job = self.job
        return getattr(job, "next_run_time", None) if job else None

    def _cancel(self) -> None:
        try:
            self._scheduler.remove_job(ALARM_JOB_ID)
            logger.debug("Cancelled existing alarm job")
        except JobLookupError:
            pass

    def reschedule(self) -> bool:
        """
        Re-arm the wake job from the stored configuration.

        Returns:
            True if a job is armed afterwards
        """
        with self._lock:
            self._cancel()

            config = self.config_store.get_config()
            if config is None:
                logger.info("No alarm configuration found")
                return False
            if not config.enabled:
                logger.info("Alarm disabled, no job scheduled")
                return False

            hour, minute = config.hour_minute
            trigger = CronTrigger(hour=hour, minute=minute, timezone=self.timezone) if self.timezone \
                else CronTrigger(hour=hour, minute=minute)
            self._scheduler.add_job(
                self._tick,
                trigger=trigger,
                id=ALARM_JOB_ID,
                replace_existing=True,
                misfire_grace_time=None,  # Allow misfired alarms to run regardless of delay
                coalesce=True,
            )
            logger.info(f"Scheduled alarm for {config.time} daily")
            return True

    def _tick(self) -> None:
        logger.info(f"Alarm triggered at {datetime.now().isoformat()}")
        try:
            self.pipeline.trigger()
        except Exception as e:
            logger.error(f"Scheduled alarm failed: {e}")

    def _run_manual(self) -> None:
        try:
            self.pipeline.trigger()
        except Exception as e:
            logger.error(f"Test alarm failed: {e}")

    def trigger_manually(self) -> Future:
        """Run the pipeline in the background; the audit log records the outcome."""
        logger.info("Test alarm triggered")
        return self._executor.submit(self._run_manual)

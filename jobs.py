import logging
import threading
from contextlib import nullcontext
from datetime import datetime, timedelta

from flask import has_app_context

from models import db

logger = logging.getLogger(__name__)

INTERVAL_JOBS = {
    "alert-sweep": timedelta(hours=1),
    "badge-sweep": timedelta(hours=6),
    "daily-badges": timedelta(days=1),
}


def _month_key(now):
    return now.year, now.month


def _week_key(now):
    return tuple(now.isocalendar())[:2]


# Jobs fired once when the calendar period changes
CALENDAR_JOBS = {
    "monthly-reset": _month_key,
    "monthly-report": _month_key,
    "weekly-report": _week_key,
}


class JobRunner:
    def __init__(self, app, budgets, badges):
        self.app = app
        self.budgets = budgets
        self.badges = badges
        self.jobs = {
            "alert-sweep": budgets.process_pending_alerts,
            "badge-sweep": badges.process_all_eligible_badges,
            "daily-badges": self.run_daily_badges,
            "monthly-reset": budgets.reset_all_alert_flags,
            "weekly-report": lambda: self.request_report("weekly"),
            "monthly-report": lambda: self.request_report("monthly"),
        }
        self._locks = {name: threading.Lock() for name in self.jobs}

    def run_daily_badges(self):
        return self.badges.process_all_eligible_badges() + self.badges.process_daily_badges()

    def request_report(self, period):
        # Report generation lives outside this service
        logger.info("%s report requested", period.capitalize())
        return period

    def run(self, name):
        """Run job ``name``; returns False when it was skipped because it is already running."""
        if name not in self.jobs:
            raise ValueError(f"Unknown job: {name}")
        lock = self._locks[name]
        if not lock.acquire(blocking=False):
            logger.warning("Job %s is still running, skipping this trigger", name)
            return False
        try:
            context = nullcontext() if has_app_context() else self.app.app_context()
            with context:
                logger.info("Starting job %s at %s", name, datetime.now())
                try:
                    result = self.jobs[name]()
                except Exception:
                    db.session.rollback()
                    logger.exception("Job %s failed", name)
                else:
                    logger.info("Job %s completed: %s", name, result)
        finally:
            lock.release()
        return True


class JobScheduler:
    def __init__(self, runner, clock=datetime.now):
        self.runner = runner
        self.clock = clock
        self.last_run = {name: None for name in INTERVAL_JOBS}
        # calendar jobs wait for the next period boundary
        now = clock()
        self.last_period = {name: key(now) for name, key in CALENDAR_JOBS.items()}

    def due_jobs(self, now):
        due = []
        for name, interval in INTERVAL_JOBS.items():
            last = self.last_run[name]
            if last is None or now - last >= interval:
                due.append(name)
        for name, key in CALENDAR_JOBS.items():
            if key(now) != self.last_period[name]:
                due.append(name)
        return due

    def tick(self, now=None):
        now = now or self.clock()
        started = []
        for name in self.due_jobs(now):
            if name in self.last_run:
                self.last_run[name] = now
            else:
                self.last_period[name] = CALENDAR_JOBS[name](now)
            thread = threading.Thread(target=self.runner.run, args=(name,), name=f"job-{name}", daemon=True)
            thread.start()
            started.append(name)
        return started

    def run_forever(self, poll_seconds=60, stop_event=None):
        stop_event = stop_event or threading.Event()
        logger.info("Scheduler started, polling every %ss", poll_seconds)
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(poll_seconds)
        logger.info("Scheduler stopped")

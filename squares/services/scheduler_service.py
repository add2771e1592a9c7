"""
Background polling for watched contests and games

Each watched resource gets its own interval job. After every poll the job
asks the query cache for the resource's next interval: the job is
rescheduled when the interval changes and removed once it reaches None
(contest settled, game final).
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from squares.utils.errors import SettlementError

logger = logging.getLogger(__name__)


def game_job_id(game_id):
    return f"poll_game_{game_id}"


def contest_job_id(chain_id, contest_id):
    return f"poll_contest_{chain_id}_{contest_id}"


class SchedulerService:
    """Manages adaptive polling jobs on an APScheduler background scheduler"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.service = None
        self.is_running = False
        self.intervals = {}
        self.poll_stats = {
            "last_poll": None,
            "total_polls": 0,
            "failed_polls": 0,
            "last_error": None,
        }

        if app:
            self.init_app(app)

    def init_app(self, app, scheduler=None, service=None, start=True):
        """Initialize scheduler with Flask app"""
        from squares.services.contest_service import contest_service

        self.app = app
        self.service = service or contest_service
        self.scheduler = scheduler or BackgroundScheduler(daemon=True, timezone="UTC")
        self.intervals = {}
        self.service.watcher = self

        atexit.register(self.shutdown)

        if start and app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler.remove_all_jobs()
            self.scheduler.start()
            self.is_running = True
            logger.info("Scheduler started successfully")
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")
        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        self.stop()

    def _add_poll_job(self, job_id, func, args, interval, name):
        self.scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=interval),
            args=args,
            id=job_id,
            name=name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            misfire_grace_time=interval,
        )
        self.intervals[job_id] = interval

    def watch_game(self, game_id):
        """Poll a game's score until it is final; already watched games are left alone"""
        interval = self.app.config.get("GAME_SCORES_POLL_INTERVAL", 12)
        job_id = game_job_id(game_id)
        if job_id in self.intervals:
            return job_id
        self._add_poll_job(job_id, self._poll_game, [game_id], interval, f"Poll game {game_id}")
        logger.info(f"Watching game {game_id} every {interval}s")
        return job_id

    def watch_contest(self, contest_id, chain_id=None):
        """Poll a contest until it is settled"""
        chain_id = chain_id or self.app.config.get("CHAIN_ID")
        interval = self.app.config.get("CONTEST_POLL_INTERVAL", 15)
        job_id = contest_job_id(chain_id, contest_id)
        if job_id in self.intervals:
            return job_id
        self._add_poll_job(
            job_id,
            self._poll_contest,
            [contest_id, chain_id],
            interval,
            f"Poll contest {contest_id} on chain {chain_id}",
        )
        logger.info(f"Watching contest {contest_id} on chain {chain_id} every {interval}s")
        return job_id

    def unwatch(self, job_id):
        self.intervals.pop(job_id, None)
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.info(f"Stopped polling job {job_id}")
        return True

    def _apply_interval(self, job_id, interval):
        """Reschedule or remove a job after a poll"""
        if interval is None:
            self.unwatch(job_id)
            return

        if self.intervals.get(job_id) != interval:
            self.scheduler.reschedule_job(job_id, trigger=IntervalTrigger(seconds=interval))
            self.intervals[job_id] = interval
            logger.info(f"Polling job {job_id} now runs every {interval}s")

    def _poll_game(self, game_id):
        job_id = game_job_id(game_id)
        with self.app.app_context():
            try:
                game_score = self.service.get_game_score(game_id)
            except SettlementError as e:
                self._update_stats(False, e)
                logger.warning(f"Polling game {game_id} failed: {e}")
                return

            self._update_stats(True)
            self._apply_interval(job_id, self.service.game_scores_poll_interval(game_id, game_score))

    def _poll_contest(self, contest_id, chain_id):
        job_id = contest_job_id(chain_id, contest_id)
        with self.app.app_context():
            try:
                self.service.get_contest_payload(contest_id, chain_id)
            except SettlementError as e:
                self._update_stats(False, e)
                logger.warning(f"Polling contest {contest_id} failed: {e}")
                return

            self._update_stats(True)
            self._apply_interval(job_id, self.service.contest_poll_interval(contest_id, chain_id))

    def _update_stats(self, success, error=None):
        self.poll_stats["last_poll"] = datetime.now(timezone.utc)
        self.poll_stats["total_polls"] += 1
        if success:
            self.poll_stats["last_error"] = None
        else:
            self.poll_stats["failed_polls"] += 1
            self.poll_stats["last_error"] = str(error)

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "interval": self.intervals.get(job.id),
                    }
                )

        return {"is_running": self.is_running, "jobs": jobs, "stats": dict(self.poll_stats)}


# Global scheduler instance
scheduler_service = SchedulerService()

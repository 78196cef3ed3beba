# --- START OF FILE services/scheduler_service.py ---

import asyncio
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.events import EVENT_JOB_ERROR
import pytz

from tools.logger import log_info, log_error, log_warning
from tools.config import DRIVE_CACHE_REFRESH_MINUTES
from tools.drive_service import DriveService
from services.security_service import SecurityGuard

scheduler = None
DEFAULT_TIMEZONE = 'UTC' # APScheduler's internal timezone for scheduling
DRIVE_REFRESH_TIMEOUT_SECONDS = 600
RATE_LIMIT_CLEANUP_HOURS = 1

_loop: asyncio.AbstractEventLoop | None = None
_drive: DriveService | None = None
_security: SecurityGuard | None = None

def _job_listener(event):
    fn_name = "_job_listener_scheduler"
    job = scheduler.get_job(event.job_id) if scheduler else None
    job_name = job.name if job else event.job_id
    if event.exception:
        log_error("scheduler_service", fn_name, f"Job '{job_name}' crashed: {event.exception}")
        log_error("scheduler_service", fn_name, f"Traceback: {event.traceback}")

def refresh_drive_cache_job():
    """
    Runs on a scheduler thread. The walk itself runs on the application loop so it
    shares the Drive cache lock with searches.
    """
    fn_name = "refresh_drive_cache_job"
    if _loop is None or _drive is None or not _loop.is_running():
        log_warning("scheduler_service", fn_name, "Event loop or Drive service unavailable. Skipping refresh.")
        return
    future = asyncio.run_coroutine_threadsafe(_drive.refresh_cache(force=True), _loop)
    files = future.result(timeout=DRIVE_REFRESH_TIMEOUT_SECONDS)
    log_info("scheduler_service", fn_name, f"Scheduled Drive refresh cached {len(files)} files.")


def rate_limit_cleanup_job():
    fn_name = "rate_limit_cleanup_job"
    if _security is None:
        return
    dropped = _security.cleanup()
    if dropped:
        log_info("scheduler_service", fn_name, f"Forgot message history of {dropped} idle users.")


def start_scheduler(loop: asyncio.AbstractEventLoop, drive: DriveService | None,
                    security: SecurityGuard | None = None) -> bool:
    global scheduler, _loop, _drive, _security
    fn_name = "start_scheduler"

    if scheduler and scheduler.running:
        log_warning("scheduler_service", fn_name, "Scheduler is already running.")
        return True

    _loop = loop
    _drive = drive
    _security = security
    try:
        log_info("scheduler_service", fn_name, "Initializing APScheduler...")
        executors = {'default': ThreadPoolExecutor(2)}
        job_defaults = {'coalesce': True, 'max_instances': 1} # Prevent job run overlap
        scheduler = BackgroundScheduler(
            executors=executors, job_defaults=job_defaults, timezone=pytz.timezone(DEFAULT_TIMEZONE)
        )

        jobs_scheduled_count = 0
        if drive is not None and drive.get_folder_ids():
            scheduler.add_job(
                refresh_drive_cache_job,
                trigger='interval', minutes=DRIVE_CACHE_REFRESH_MINUTES,
                id='drive_cache_refresh', name='Refresh Drive Cache'
            )
            jobs_scheduled_count += 1
        else:
            log_info("scheduler_service", fn_name, "No Drive folders configured. Drive refresh job not scheduled.")

        if security is not None:
            scheduler.add_job(
                rate_limit_cleanup_job,
                trigger='interval', hours=RATE_LIMIT_CLEANUP_HOURS,
                id='rate_limit_cleanup', name='Rate Limit Cleanup'
            )
            jobs_scheduled_count += 1

        scheduler.add_listener(_job_listener, EVENT_JOB_ERROR)
        scheduler.start()
        log_info("scheduler_service", fn_name, f"Scheduler started with {jobs_scheduled_count} job(s).")
        return True
    except Exception as e:
        log_error("scheduler_service", fn_name, "Failed to start scheduler", e)
        scheduler = None
        return False

def shutdown_scheduler():
    global scheduler
    fn_name = "shutdown_scheduler"
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        log_info("scheduler_service", fn_name, "Scheduler shut down.")
    scheduler = None

# --- END OF FILE services/scheduler_service.py ---

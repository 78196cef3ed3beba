import asyncio

import pytest

from services import scheduler_service
from conftest import FakeDrive, make_remote


class CountingDrive(FakeDrive):
    def __init__(self, files):
        super().__init__(files)
        self.refreshes = []

    async def refresh_cache(self, force=False):
        self.refreshes.append(force)
        return self.files


@pytest.mark.asyncio
async def test_refresh_job_is_scheduled_only_with_drive_folders():
    loop = asyncio.get_running_loop()
    try:
        assert scheduler_service.start_scheduler(loop, FakeDrive())
        assert scheduler_service.scheduler.get_job("drive_cache_refresh") is not None
    finally:
        scheduler_service.shutdown_scheduler()

    try:
        assert scheduler_service.start_scheduler(loop, None)
        assert scheduler_service.scheduler.get_job("drive_cache_refresh") is None
    finally:
        scheduler_service.shutdown_scheduler()
    assert scheduler_service.scheduler is None


@pytest.mark.asyncio
async def test_refresh_job_runs_the_walk_on_the_app_loop():
    drive = CountingDrive([make_remote("CS101 Handout.pdf")])
    loop = asyncio.get_running_loop()
    try:
        scheduler_service.start_scheduler(loop, drive)
        # Scheduler jobs run on worker threads.
        await asyncio.to_thread(scheduler_service.refresh_drive_cache_job)
    finally:
        scheduler_service.shutdown_scheduler()
    assert drive.refreshes == [True]


class CountingGuard:
    def __init__(self):
        self.cleanups = 0

    def cleanup(self):
        self.cleanups += 1
        return 2


@pytest.mark.asyncio
async def test_rate_limit_cleanup_job_is_scheduled_with_a_guard():
    loop = asyncio.get_running_loop()
    guard = CountingGuard()
    try:
        assert scheduler_service.start_scheduler(loop, None, security=guard)
        assert scheduler_service.scheduler.get_job("rate_limit_cleanup") is not None
        scheduler_service.rate_limit_cleanup_job()
    finally:
        scheduler_service.shutdown_scheduler()
    assert guard.cleanups == 1

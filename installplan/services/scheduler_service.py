"""
Installation Planning Service
Scheduler Service.

Job registry plus run bookkeeping. The actual clock lives outside the
process (cron, a platform scheduler, or the manual trigger endpoint calls
``run_job``); this service resolves the job, runs it inside an app context
and persists the outcome on its ScheduledJob row.

Architecture:
    - register_job: decorator that adds a job function to the registry
    - ScheduledJob: persisted config + run history per job
    - SchedulerService: registration sync, execution, listing, toggling
"""

from __future__ import annotations

import logging
import time
from contextlib import nullcontext
from typing import Callable

from flask import Flask, has_app_context
from sqlalchemy import select

from installplan.models import db
from installplan.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("evm_daily_snapshot")
        def run_evm_daily_snapshot(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


def _find_job(job_name: str) -> ScheduledJob | None:
    return db.session.execute(
        select(ScheduledJob).where(ScheduledJob.job_name == job_name)
    ).scalar_one_or_none()


class SchedulerService:
    """
    Job registration, persistence and execution.

    Jobs are executed within a Flask app context.
    """

    _app: Flask | None = None

    @classmethod
    def _context(cls):
        """Reuse the active app context (and its session) when there is one."""
        if has_app_context():
            return nullcontext()
        return cls._app.app_context()

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Bind the scheduler to the Flask app."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row (default config) for every registered job lacking one."""
        if not cls._app:
            return []

        created = []
        with cls._context():
            for name, fn in _job_registry.items():
                if _find_job(name) is None:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip(),
                        schedule_type="cron",
                        schedule_config=_get_default_schedule(name, cls._app),
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Job failures are caught, logged and recorded on the job row; the
        returned dict carries status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"status": "error", "error": "Scheduler not initialized"}

        with cls._context():
            job_record = _find_job(job_name)
            if job_record is not None and not job_record.is_enabled:
                logger.info("Job %s skipped (disabled)", job_name, extra={"job_name": job_name})
                return {"job_name": job_name, "status": "skipped", "duration_ms": 0,
                        "result": None, "error": None}

            start = time.monotonic()
            result = None
            error = None
            status = "success"

            try:
                result = fn(cls._app)
            except Exception as exc:
                db.session.rollback()
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

            duration_ms = int((time.monotonic() - start) * 1000)

            job_record = _find_job(job_name)
            if job_record is not None:
                job_record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()

        logger.info("Job %s finished: %s (%dms)", job_name, status, duration_ms,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = _find_job(name)
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        """Get status of a specific job."""
        job_record = _find_job(job_name)
        return job_record.to_dict() if job_record else None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        job_record = _find_job(job_name)
        if not job_record:
            return None
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        logger.info("Job %s %s", job_name, "enabled" if enabled else "disabled",
                    extra={"job_name": job_name})
        return job_record.to_dict()


def _get_default_schedule(job_name: str, app: Flask | None = None) -> dict:
    """Return default schedule config for known job types."""
    hour = app.config.get("EVM_SNAPSHOT_HOUR_UTC", 0) if app else 0
    defaults = {
        "evm_daily_snapshot": {"hour": str(hour), "minute": "0", "timezone": "UTC",
                               "description": f"Daily at {hour:02d}:00 UTC"},
    }
    return defaults.get(job_name, {"hour": "0", "minute": "0", "timezone": "UTC",
                                   "description": "Daily at midnight UTC"})

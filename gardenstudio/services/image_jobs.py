"""
In-process store for vision rendering jobs.

Image generation takes longer than a request should, so the route submits a
job and the client polls its status. Jobs live in a TTL cache and run on a
small thread pool; a finished job is removed the first time its result is
read.

Job record:
    {"status": "pending", "created_at": iso}
    {"status": "complete", "image_url": str, "revised_prompt": str | None, ...}
    {"status": "error", "error": str, ...}
"""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cachetools import TTLCache
from flask import current_app

from gardenstudio.services import vision

JOB_TTL_SECONDS = 900
JOB_MAX_ENTRIES = 1000
JOB_WORKERS = 2

FINISHED_STATES = ("complete", "error")

_jobs: TTLCache = TTLCache(maxsize=JOB_MAX_ENTRIES, ttl=JOB_TTL_SECONDS)
_jobs_lock = threading.Lock()
_executor: Optional[ThreadPoolExecutor] = None


def init_image_jobs(app) -> None:
    """Size the job store and worker pool from app config."""
    global _jobs, _executor
    ttl = app.config.get("IMAGE_JOB_TTL_SECONDS", JOB_TTL_SECONDS)
    workers = app.config.get("IMAGE_JOB_WORKERS", JOB_WORKERS)
    with _jobs_lock:
        _jobs = TTLCache(maxsize=JOB_MAX_ENTRIES, ttl=ttl)
    if _executor is not None:
        _executor.shutdown(wait=False)
    _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="vision-job")


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=JOB_WORKERS, thread_name_prefix="vision-job")
    return _executor


def _store(job_id: str, record: Dict[str, Any]) -> None:
    with _jobs_lock:
        _jobs[job_id] = record


def _run(app, job_id: str, user_id: Optional[str], prompt: str, season: str) -> None:
    with app.app_context():
        result, error = vision.generate_image(prompt, season)
        finished_at = datetime.now(timezone.utc).isoformat()
        if error:
            app.logger.warning(f"Vision job {job_id} for user {user_id or 'guest'} failed: {error}")
            _store(job_id, {"status": "error", "error": error, "finished_at": finished_at})
            return
        _store(job_id, {
            "status": "complete",
            "image_url": result["image_url"],
            "revised_prompt": result.get("revised_prompt"),
            "season": season,
            "finished_at": finished_at,
        })
        app.logger.info(f"Vision job {job_id} for user {user_id or 'guest'} complete")


def submit(user_id: Optional[str], prompt: str, season: str = "spring") -> str:
    """
    Queue an image generation and return its job id (32 hex chars).

    Must be called inside an app context; the worker re-enters it so the
    generator can read config.
    """
    job_id = uuid.uuid4().hex
    _store(job_id, {"status": "pending", "created_at": datetime.now(timezone.utc).isoformat()})
    app = current_app._get_current_object()
    _get_executor().submit(_run, app, job_id, user_id, prompt, season)
    return job_id


def status(job_id: str) -> Dict[str, Any]:
    """Current job record; unknown or expired jobs read as pending."""
    with _jobs_lock:
        record = _jobs.get(job_id)
        if record is None:
            return {"status": "pending"}
        if record.get("status") in FINISHED_STATES:
            del _jobs[job_id]
        return dict(record)


def purge() -> int:
    """Drop expired jobs. Returns how many remain."""
    with _jobs_lock:
        _jobs.expire()
        return len(_jobs)


def clear() -> None:
    with _jobs_lock:
        _jobs.clear()

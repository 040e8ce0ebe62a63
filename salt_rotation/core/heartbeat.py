"""
Daily scheduler for rotation tasks.
Registers the rotation once per process and fires it at a fixed local time of day.
"""

import threading
import time
from datetime import datetime, time as dtime, timedelta
from typing import Callable, Dict, List, Optional

from .config import (
    ROTATION_SCHEDULER_POLL_SEC,
    ROTATION_TASK_NAME,
    SCHEDULE_MARKER_OPTION,
    get_schedule_time,
    is_scheduler_enabled,
    validate_rotation_config,
)
from .db import get_option, init_db, set_option
from ..util.logging import logger


tasks: Dict[str, Dict] = {}  # task_name -> {func, at, next_run, last_run, persist_marker, db_path}
running = False
shutdown_event: Optional[threading.Event] = None
_loop_thread: Optional[threading.Thread] = None


def parse_schedule_time(value: str) -> dtime:
    hours, minutes = value.strip().split(":")
    return dtime(int(hours), int(minutes))


def next_run_after(now: datetime, at: dtime) -> datetime:
    """Next local occurrence of ``at`` strictly after ``now``."""
    candidate = datetime.combine(now.date(), at)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def register_task(name: str, at: dtime, func: Callable, next_run: Optional[datetime] = None,
                  persist_marker: bool = False, db_path: Optional[str] = None):
    """
    Register a task to be executed daily.

    Args:
        name: Unique task identifier
        at: Local time of day to run
        func: Function to call
        next_run: First run; defaults to the next occurrence of ``at``
        persist_marker: Keep the next run in the option store at ``db_path``
    """
    if not callable(func):
        raise ValueError(f"Task function must be callable: {func}")

    issues = validate_rotation_config()
    if issues:
        raise ValueError(f"Rotation configuration invalid: {issues}")

    tasks[name] = {
        "func": func,
        "at": at,
        "next_run": next_run or next_run_after(datetime.now(), at),
        "last_run": None,
        "persist_marker": persist_marker,
        "db_path": db_path,
    }

    logger.info(f"Registered scheduled task '{name}' (daily at {at.strftime('%H:%M')}, next {tasks[name]['next_run']})")


def unregister_task(name: str):
    """Remove a task from the registry."""
    if name in tasks:
        del tasks[name]
        logger.info(f"Unregistered scheduled task '{name}'")


def list_tasks():
    """Return list of registered task names."""
    return list(tasks.keys())


def ensure_scheduled(func: Callable, db_path: Optional[str] = None, now: Optional[datetime] = None) -> bool:
    """
    Register the daily rotation task unless it already is.

    The next run is persisted as an option so restarts keep the schedule
    instead of pushing it a day further out.

    Returns:
        True if the task was registered by this call.
    """
    if ROTATION_TASK_NAME in tasks:
        return False

    init_db(db_path)
    at = parse_schedule_time(get_schedule_time())
    now = now or datetime.now()

    next_run = None
    marker = get_option(SCHEDULE_MARKER_OPTION, db_path)
    if marker:
        try:
            next_run = datetime.fromisoformat(marker)
        except ValueError:
            logger.warning(f"Ignoring malformed schedule marker {marker!r}")

    persist = next_run is None
    if persist:
        next_run = next_run_after(now, at)

    # register_task validates the configuration before any marker is written
    register_task(ROTATION_TASK_NAME, at, func, next_run=next_run, persist_marker=True, db_path=db_path)
    if persist:
        set_option(SCHEDULE_MARKER_OPTION, next_run.isoformat(), db_path)
    return True


def should_run_task(name: str, task_info: Dict, now: datetime) -> bool:
    """Check if a task is due."""
    return task_info["next_run"] <= now


def run_task(name: str, task_info: Dict, now: datetime):
    """Execute a task and advance its schedule."""
    # Advance first so a failing task is not retried on every poll
    task_info["next_run"] = next_run_after(now, task_info["at"])
    if task_info.get("persist_marker"):
        set_option(SCHEDULE_MARKER_OPTION, task_info["next_run"].isoformat(), task_info.get("db_path"))

    start_time = time.monotonic()
    try:
        task_info["func"]()
    except Exception as e:
        end_time = time.monotonic()
        logger.log_scheduler_task(name, start_time, end_time, "failed", {"error": str(e)})
        raise RuntimeError(f"Task '{name}' failed after {end_time - start_time:.2f}s: {e}") from e

    task_info["last_run"] = now
    logger.log_scheduler_task(name, start_time, time.monotonic())


def run_pending(now: Optional[datetime] = None) -> List[str]:
    """Run every due task once. Task errors are isolated. Returns names of tasks run."""
    now = now or datetime.now()
    ran = []
    for name, task_info in list(tasks.items()):
        if should_run_task(name, task_info, now):
            ran.append(name)
            try:
                run_task(name, task_info, now)
            except RuntimeError as e:
                logger.error(f"Scheduled task '{name}' failed: {e}")
    return ran


def start(poll_sec: float = ROTATION_SCHEDULER_POLL_SEC):
    """
    Start the scheduler loop (blocking).

    Polls for due tasks every ``poll_sec`` seconds until ``stop()`` is called.
    """
    global running, shutdown_event

    if not is_scheduler_enabled():
        logger.info("Scheduler disabled (ROTATION_SCHEDULER_ENABLED=false). Skipping start.")
        return

    if running:
        raise RuntimeError("Scheduler already running")

    running = True
    shutdown_event = threading.Event()
    logger.info(f"Starting scheduler loop; tasks: {list(tasks.keys())}")

    try:
        while not shutdown_event.is_set():
            run_pending()
            shutdown_event.wait(poll_sec)
    finally:
        running = False
        logger.info("Scheduler loop stopped")


def start_in_background(poll_sec: float = ROTATION_SCHEDULER_POLL_SEC) -> Optional[threading.Thread]:
    """Run ``start`` on a daemon thread, for embedding in the web process."""
    global _loop_thread

    if not is_scheduler_enabled() or (_loop_thread and _loop_thread.is_alive()):
        return None

    _loop_thread = threading.Thread(target=start, args=(poll_sec,), name="salt-rotation-scheduler", daemon=True)
    _loop_thread.start()
    return _loop_thread


def stop():
    """Stop the scheduler loop gracefully."""
    global _loop_thread

    if not running:
        logger.info("Scheduler not running")
        return

    if shutdown_event:
        shutdown_event.set()

    if _loop_thread and _loop_thread is not threading.current_thread():
        _loop_thread.join(timeout=5)
        _loop_thread = None

    logger.info("Scheduler stopped")


def get_status():
    """Return current scheduler status for monitoring."""
    if not is_scheduler_enabled():
        status = "disabled"
    else:
        status = "running" if running else "stopped"

    return {
        "status": status,
        "tasks": {
            name: {
                "at": info["at"].strftime("%H:%M"),
                "next_run": info["next_run"].isoformat() if info["next_run"] else None,
                "last_run": info["last_run"].isoformat() if info["last_run"] else None,
            }
            for name, info in tasks.items()
        },
    }

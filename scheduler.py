"""
Background scheduler for periodic maintenance jobs.

Jobs:
  - Expire group data-sharing permissions past their end date (hourly)
"""

from __future__ import annotations

import logging
import sqlite3

from apscheduler.schedulers.background import BackgroundScheduler

import database
from permission_store import GroupPermissionStore

logger = logging.getLogger(__name__)


def expire_permissions(app) -> int:
    """Mark active permissions whose end date has passed as expired."""
    conn = database.connect(app.config["DATABASE"])
    try:
        expired = GroupPermissionStore.cleanup_expired(conn)
    except sqlite3.Error as e:
        logger.error("Permission cleanup failed: %s", e)
        return 0
    finally:
        conn.close()
    if expired:
        logger.info("Expired %d group permissions", expired)
    return expired


def init_scheduler(app) -> BackgroundScheduler:
    """Start the background scheduler and register periodic jobs."""
    scheduler = BackgroundScheduler(daemon=True)

    scheduler.add_job(
        func=expire_permissions,
        args=[app],
        trigger="interval",
        hours=1,
        id="expire_permissions",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started (permission expiry)")
    return scheduler

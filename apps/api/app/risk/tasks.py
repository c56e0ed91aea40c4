from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from sqlalchemy.orm import Session

from app.core.celery_app import celery_app
from app.core.config import get_settings
from app.core.database import SessionLocal
from app.metrics import observe_housekeeping_job
from app.risk import credit_limits
from app.risk.repositories import build_repositories


logger = logging.getLogger("app.risk.tasks")

SessionFactory = Callable[[], Session]


def run_housekeeping_job(
    job_type: str,
    job: Callable[[Session], dict[str, Any]],
    session_factory: SessionFactory = SessionLocal,
) -> dict[str, Any]:
    """Run one maintenance job in its own transaction, recording outcome and duration."""

    started = time.perf_counter()
    session = session_factory()
    try:
        result = job(session)
        session.commit()
    except Exception:
        session.rollback()
        observe_housekeeping_job(job_type, "failed", time.perf_counter() - started)
        logger.exception("housekeeping_job_failed", extra={"job_type": job_type, "status": "failed"})
        raise
    finally:
        session.close()

    observe_housekeeping_job(job_type, "succeeded", time.perf_counter() - started)
    logger.info("housekeeping_job_completed", extra={"job_type": job_type, "status": "succeeded", **result})
    return result


def _reset_counters(session: Session) -> dict[str, Any]:
    return {"organizations_reset": build_repositories().organizations.reset_application_counters(session)}


def _remove_redundant(session: Session) -> dict[str, Any]:
    report = credit_limits.remove_redundant_credit_limits(session, get_settings().remediation_dump_dir)
    return {"pairs_processed": report.pairs_processed, "rows_deleted": report.rows_deleted, "dump_path": report.dump_path}


def _update_limits(session: Session) -> dict[str, Any]:
    report = credit_limits.update_credit_limits(session, get_settings().remediation_dump_dir)
    return {"pairs_processed": report.pairs_processed, "rows_deleted": report.rows_deleted, "dump_path": report.dump_path}


@celery_app.task(name="app.risk.tasks.reset_application_counter")
def reset_application_counter() -> dict[str, Any]:
    return run_housekeeping_job("reset_application_counter", _reset_counters)


@celery_app.task(name="app.risk.tasks.remove_redundant_credit_limits")
def remove_redundant_credit_limits() -> dict[str, Any]:
    return run_housekeeping_job("remove_redundant_credit_limits", _remove_redundant)


@celery_app.task(name="app.risk.tasks.update_credit_limits")
def update_credit_limits() -> dict[str, Any]:
    return run_housekeeping_job("update_credit_limits", _update_limits)

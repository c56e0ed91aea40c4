from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.risk.models import Application, ApplicationStatus, ClientDebtor, Policy
from app.risk.policies import CREDIT_INSURANCE_PRODUCT, find_active_policy
from app.services.audit import write_audit_log


logger = logging.getLogger("app.risk.credit_limits")

RESOLVING_STATUSES: tuple[str, ...] = (
    ApplicationStatus.APPROVED.value,
    ApplicationStatus.DECLINED.value,
    ApplicationStatus.WITHDRAWN.value,
    ApplicationStatus.CANCELLED.value,
)


@dataclass(frozen=True, slots=True)
class EndorsedLimitDecision:
    is_endorsed_limit: bool
    policy: Policy | None = None

    @property
    def discretionary_limit(self) -> Decimal | None:
        return self.policy.discretionary_limit if self.policy is not None else None


@dataclass(slots=True)
class RemediationReport:
    pairs_processed: int = 0
    rows_deleted: int = 0
    applications_repointed: int = 0
    dump_path: str | None = None
    changes: list[dict[str, Any]] = field(default_factory=list)


def decide_endorsed_limit(
    session: Session,
    client_id: uuid.UUID,
    credit_limit: Decimal | int | float,
    on_date: date | datetime,
) -> EndorsedLimitDecision:
    policy = find_active_policy(session, client_id, CREDIT_INSURANCE_PRODUCT, on_date)
    if policy is None or policy.discretionary_limit is None:
        return EndorsedLimitDecision(is_endorsed_limit=False, policy=policy)
    requested = Decimal(str(credit_limit))
    return EndorsedLimitDecision(is_endorsed_limit=requested > policy.discretionary_limit, policy=policy)


def check_endorsed_limit(
    session: Session,
    client_id: uuid.UUID,
    credit_limit: Decimal | int | float,
    on_date: date | datetime,
) -> bool:
    """True when the request exceeds the discretionary limit of the client's live Credit-Insurance policy."""

    return decide_endorsed_limit(session, client_id, credit_limit, on_date).is_endorsed_limit


def _snapshot(row: ClientDebtor) -> dict[str, Any]:
    return {
        "_id": str(row.id),
        "clientId": str(row.client_id),
        "debtorId": str(row.debtor_id),
        "creditLimit": str(row.credit_limit) if row.credit_limit is not None else None,
        "isEndorsedLimit": row.is_endorsed_limit,
        "isActive": row.is_active,
        "activeApplicationId": str(row.active_application_id) if row.active_application_id else None,
        "status": row.status,
        "expiryDate": row.expiry_date.isoformat() if row.expiry_date else None,
    }


def _latest_resolved_application(session: Session, client_id: uuid.UUID, debtor_id: uuid.UUID) -> Application | None:
    return session.scalar(
        select(Application)
        .where(
            Application.client_id == client_id,
            Application.debtor_id == debtor_id,
            Application.status.in_(RESOLVING_STATUSES),
            Application.approval_or_declining_date.is_not(None),
        )
        .order_by(Application.approval_or_declining_date.desc())
        .limit(1)
    )


def remove_redundant_credit_limits(session: Session, dump_dir: str | Path | None = None) -> RemediationReport:
    """Collapse duplicate ClientDebtor rows per (client, debtor) pair into one live record.

    The earliest row is kept and re-derived from the pair's latest approved, declined,
    withdrawn or cancelled application; applications are re-pointed at it and the other
    rows are deleted. Every change is written to the audit log and, when
    ``dump_dir`` is given, to a JSON dump. Running it again is a no-op.
    The caller owns the transaction.
    """

    report = RemediationReport()
    pairs = session.execute(
        select(ClientDebtor.client_id, ClientDebtor.debtor_id)
        .group_by(ClientDebtor.client_id, ClientDebtor.debtor_id)
        .having(func.count(ClientDebtor.id) > 1)
    ).all()

    for client_id, debtor_id in pairs:
        rows = list(
            session.scalars(
                select(ClientDebtor)
                .where(ClientDebtor.client_id == client_id, ClientDebtor.debtor_id == debtor_id)
                .order_by(ClientDebtor.created_at, ClientDebtor.id)
            ).all()
        )
        primary, duplicates = rows[0], rows[1:]
        before = [_snapshot(row) for row in rows]
        duplicate_ids = [row.id for row in duplicates]

        repointed = list(
            session.scalars(
                select(Application).where(Application.client_id == client_id, Application.debtor_id == debtor_id)
            ).all()
        )
        for application in repointed:
            application.client_debtor_id = primary.id
        session.flush()

        for duplicate in duplicates:
            write_audit_log(
                session,
                entity_type="client-debtor",
                entity_ref_id=str(duplicate.id),
                action_type="delete",
                description="Removed redundant credit limit",
                before=_snapshot(duplicate),
            )
            session.delete(duplicate)
        # Duplicates go before the primary is revived so the live-pair index never sees two active rows.
        session.flush()

        latest = _latest_resolved_application(session, client_id, debtor_id)
        if latest is not None:
            primary.active_application_id = latest.id
            primary.credit_limit = latest.accepted_amount or Decimal("0")
            primary.status = latest.status
            primary.is_endorsed_limit = latest.is_endorsed_limit
            primary.expiry_date = latest.expiry_date
        primary.is_active = True
        session.flush()

        after = _snapshot(primary)
        write_audit_log(
            session,
            entity_type="client-debtor",
            entity_ref_id=str(primary.id),
            action_type="update",
            description="Kept as live credit limit after de-duplication",
            before=before[0],
            after=after,
        )
        report.pairs_processed += 1
        report.rows_deleted += len(duplicates)
        report.applications_repointed += len(repointed)
        report.changes.append(
            {
                "clientId": str(client_id),
                "debtorId": str(debtor_id),
                "kept": str(primary.id),
                "deleted": [str(item) for item in duplicate_ids],
                "repointedApplications": [str(item.id) for item in repointed],
                "before": before,
                "after": after,
            }
        )

    session.flush()
    if dump_dir is not None:
        report.dump_path = str(_write_dump(Path(dump_dir), "remove-redundant-credit-limits", report.changes))
    logger.info(
        "credit_limit_dedup_completed",
        extra={
            "pairs_processed": report.pairs_processed,
            "rows_deleted": report.rows_deleted,
            "dump_path": report.dump_path,
        },
    )
    return report


def update_credit_limits(session: Session, dump_dir: str | Path | None = None) -> RemediationReport:
    """Resync expiry and endorsement of live credit limits from their active application."""

    report = RemediationReport()
    rows = session.execute(
        select(ClientDebtor, Application)
        .join(Application, Application.id == ClientDebtor.active_application_id)
        .where(ClientDebtor.is_active.is_(True))
    ).all()
    for client_debtor, application in rows:
        if (
            client_debtor.expiry_date == application.expiry_date
            and client_debtor.is_endorsed_limit == application.is_endorsed_limit
        ):
            continue
        before = _snapshot(client_debtor)
        client_debtor.expiry_date = application.expiry_date
        client_debtor.is_endorsed_limit = application.is_endorsed_limit
        after = _snapshot(client_debtor)
        write_audit_log(
            session,
            entity_type="client-debtor",
            entity_ref_id=str(client_debtor.id),
            action_type="update",
            description="Synced credit limit from active application",
            before=before,
            after=after,
        )
        report.pairs_processed += 1
        report.changes.append({"_id": str(client_debtor.id), "before": before, "after": after})

    session.flush()
    if dump_dir is not None:
        report.dump_path = str(_write_dump(Path(dump_dir), "update-credit-limits", report.changes))
    logger.info(
        "credit_limit_sync_completed",
        extra={"pairs_processed": report.pairs_processed, "dump_path": report.dump_path},
    )
    return report


def _write_dump(directory: Path, prefix: str, changes: list[dict[str, Any]]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    run_at = datetime.now(timezone.utc)
    path = directory / f"{prefix}-{run_at.strftime('%Y%m%dT%H%M%S%fZ')}.json"
    payload = {"runAt": run_at.isoformat(), "changes": changes}
    path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    return path

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, and_, case, func, select
from sqlalchemy.orm import Session

from app.risk.models import Application, ApplicationStatus, ClientDebtor, LimitType
from app.risk.policies import CREDIT_INSURANCE_PRODUCT, RISK_MANAGEMENT_PRODUCT, find_active_policy
from app.risk.schemas import (
    ApprovedAmountMetric,
    ApprovedApplicationMetric,
    CreditCheckMetric,
    DashboardRead,
    EndorsedLimitMetric,
    StatusCount,
)


PENDING_STATUSES: tuple[str, ...] = (
    ApplicationStatus.SENT_TO_INSURER.value,
    ApplicationStatus.REVIEW_APPLICATION.value,
    ApplicationStatus.PENDING_INSURER_REVIEW.value,
    ApplicationStatus.SUBMITTED.value,
    ApplicationStatus.UNDER_REVIEW.value,
    ApplicationStatus.AWAITING_INFORMATION.value,
)

CREDIT_CHECK_LIMIT_TYPES: tuple[str, ...] = (LimitType.CREDIT_CHECK.value, LimitType.CREDIT_CHECK_NZ.value)


def _decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _count(value: Any) -> int:
    return int(value or 0)


@dataclass(slots=True)
class DashboardAggregator:
    """Portfolio metrics for one client, optionally windowed on ``updated_at`` (both ends inclusive)."""

    def _window(self, stmt: Select[Any], column: Any, start: datetime | None, end: datetime | None) -> Select[Any]:
        if start is not None:
            stmt = stmt.where(column >= start)
        if end is not None:
            stmt = stmt.where(column <= end)
        return stmt

    def endorsed_limit(
        self,
        session: Session,
        client_id: uuid.UUID,
        *,
        aggregate_of_credit_limit: Decimal | int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> EndorsedLimitMetric:
        stmt = select(
            func.coalesce(
                func.sum(case((ClientDebtor.is_endorsed_limit.is_(True), ClientDebtor.credit_limit), else_=0)),
                0,
            )
        ).where(ClientDebtor.client_id == client_id)
        stmt = self._window(stmt, ClientDebtor.updated_at, start, end)
        return EndorsedLimitMetric(
            endorsed_limit_count=_decimal(session.scalar(stmt)),
            total_count=_decimal(aggregate_of_credit_limit),
        )

    def credit_checks(
        self,
        session: Session,
        client_id: uuid.UUID,
        *,
        no_of_credit_checks: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> CreditCheckMetric:
        stmt = select(func.count(Application.id)).where(
            Application.client_id == client_id,
            Application.status != ApplicationStatus.DRAFT.value,
            Application.limit_type.in_(CREDIT_CHECK_LIMIT_TYPES),
        )
        stmt = self._window(stmt, Application.updated_at, start, end)
        return CreditCheckMetric(
            application_count=_count(session.scalar(stmt)),
            total_count=_count(no_of_credit_checks),
        )

    def application_status(
        self,
        session: Session,
        client_id: uuid.UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[StatusCount]:
        stmt = (
            select(Application.status, func.count(Application.id))
            .where(Application.client_id == client_id, Application.status.in_(PENDING_STATUSES))
            .group_by(Application.status)
        )
        stmt = self._window(stmt, Application.updated_at, start, end)
        counts = {status: _count(count) for status, count in session.execute(stmt).all()}
        return [StatusCount(status=status, count=counts[status]) for status in PENDING_STATUSES if status in counts]

    def approved_amount(
        self,
        session: Session,
        client_id: uuid.UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ApprovedAmountMetric:
        # The debtor's current limit only counts when this application is the one it is governed by.
        governs = and_(
            ClientDebtor.active_application_id == Application.id,
            ClientDebtor.is_active.is_(True),
            Application.status == ApplicationStatus.APPROVED.value,
        )
        stmt = (
            select(
                func.coalesce(func.sum(Application.credit_limit), 0),
                func.coalesce(func.sum(case((governs, ClientDebtor.credit_limit), else_=0)), 0),
            )
            .join(ClientDebtor, ClientDebtor.id == Application.client_debtor_id)
            .where(Application.client_id == client_id)
        )
        stmt = self._window(stmt, Application.updated_at, start, end)
        total, approved = session.execute(stmt).one()
        return ApprovedAmountMetric(total=_decimal(total), approved_amount=_decimal(approved))

    def approved_application(
        self,
        session: Session,
        client_id: uuid.UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ApprovedApplicationMetric:
        approved = Application.status == ApplicationStatus.APPROVED.value
        endorsed = func.coalesce(ClientDebtor.is_endorsed_limit, False).is_(True)
        stmt = (
            select(
                func.sum(case((and_(approved, ~endorsed), 1), else_=0)),
                func.sum(case((and_(approved, endorsed), 1), else_=0)),
                func.sum(case((Application.status == ApplicationStatus.DECLINED.value, 1), else_=0)),
                func.sum(case((Application.status == ApplicationStatus.CANCELLED.value, 1), else_=0)),
            )
            .outerjoin(ClientDebtor, ClientDebtor.id == Application.client_debtor_id)
            .where(
                Application.client_id == client_id,
                Application.status.in_(
                    (
                        ApplicationStatus.APPROVED.value,
                        ApplicationStatus.DECLINED.value,
                        ApplicationStatus.CANCELLED.value,
                    )
                ),
            )
        )
        stmt = self._window(stmt, Application.updated_at, start, end)
        fully, partially, rejected, cancelled = session.execute(stmt).one()
        return ApprovedApplicationMetric(
            approved=_count(fully),
            partially_approved=_count(partially),
            rejected=_count(rejected),
            cancelled=_count(cancelled),
        )

    def client_dashboard(self, session: Session, client_id: uuid.UUID, now: datetime | None = None) -> DashboardRead:
        """Compose the dashboard around the client's live Credit-Insurance and Risk-Management policies."""

        moment = now or datetime.now(timezone.utc)
        ci_policy = find_active_policy(session, client_id, CREDIT_INSURANCE_PRODUCT, moment)
        rmp_policy = find_active_policy(session, client_id, RISK_MANAGEMENT_PRODUCT, moment)

        discretionary_limit = Decimal("0")
        if ci_policy is not None and ci_policy.discretionary_limit:
            discretionary_limit = ci_policy.discretionary_limit
        elif rmp_policy is not None and rmp_policy.discretionary_limit:
            discretionary_limit = rmp_policy.discretionary_limit

        start: datetime | None = None
        end: datetime | None = None
        period_policy = ci_policy or rmp_policy
        if period_policy is not None:
            start = period_policy.inception_date
            end = period_policy.expiry_date

        if rmp_policy is not None and rmp_policy.credit_checks:
            no_of_credit_checks = rmp_policy.credit_checks + (rmp_policy.nz_credit_checks or 0)
        elif ci_policy is not None and ci_policy.credit_checks:
            no_of_credit_checks = ci_policy.credit_checks
        else:
            no_of_credit_checks = 0

        endorsed_limit = None
        if ci_policy is not None:
            endorsed_limit = self.endorsed_limit(
                session,
                client_id,
                aggregate_of_credit_limit=ci_policy.aggregate_of_credit_limit,
                start=start,
                end=end,
            )

        return DashboardRead(
            discretionary_limit=_decimal(discretionary_limit),
            endorsed_limit=endorsed_limit,
            application_status=self.application_status(session, client_id, start=start, end=end),
            approved_amount=self.approved_amount(session, client_id, start=start, end=end),
            approved_application=self.approved_application(session, client_id, start=start, end=end),
            res_checks_count=self.credit_checks(
                session,
                client_id,
                no_of_credit_checks=no_of_credit_checks,
                start=start,
                end=end,
            ),
            show_graphs=rmp_policy is not None,
        )


dashboard_aggregator = DashboardAggregator()

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.risk.models import Policy


CREDIT_INSURANCE_PRODUCT = "Credit Insurance"
RISK_MANAGEMENT_PRODUCT = "Risk Management"


def as_utc_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def find_active_policy(
    session: Session,
    client_id: uuid.UUID,
    product_keyword: str,
    at: date | datetime,
) -> Policy | None:
    """The client's policy whose product mentions ``product_keyword`` and whose period covers ``at``.

    The period is half-open: inception inclusive, expiry exclusive.
    """

    moment = as_utc_datetime(at)
    return session.scalar(
        select(Policy)
        .where(
            Policy.client_id == client_id,
            Policy.is_deleted.is_(False),
            Policy.product.icontains(product_keyword, autoescape=True),
            Policy.inception_date <= moment,
            Policy.expiry_date > moment,
        )
        .order_by(Policy.inception_date.desc())
        .limit(1)
    )

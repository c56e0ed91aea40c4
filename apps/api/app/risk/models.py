from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(StrEnum):
    RISK_ANALYST = "riskAnalyst"
    SERVICE_MANAGER = "serviceManager"
    SUPER_ADMIN = "superAdmin"


class ApplicationStatus(StrEnum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    SENT_TO_INSURER = "SENT_TO_INSURER"
    PENDING_INSURER_REVIEW = "PENDING_INSURER_REVIEW"
    REVIEW_APPLICATION = "REVIEW_APPLICATION"
    AWAITING_INFORMATION = "AWAITING_INFORMATION"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"
    WITHDRAWN = "WITHDRAWN"
    SURRENDERED = "SURRENDERED"


class ClientDebtorStatus(StrEnum):
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    SURRENDERED = "SURRENDERED"
    APPLIED = "APPLIED"


class LimitType(StrEnum):
    CREDIT_CHECK = "CREDIT_CHECK"
    CREDIT_CHECK_NZ = "CREDIT_CHECK_NZ"
    ENDORSED = "ENDORSED"
    HEALTH_CHECK = "HEALTH_CHECK"
    FIXED = "FIXED"


class DirectorType(StrEnum):
    INDIVIDUAL = "individual"
    COMPANY = "company"


class _Timestamps:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class Organization(_Timestamps, Base):
    __tablename__ = "organization"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    application_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    debtor_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    client_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class User(_Timestamps, Base):
    __tablename__ = "risk_user"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=UserRole.RISK_ANALYST.value)
    module_access: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    manage_columns: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    max_credit_limit: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class Insurer(_Timestamps, Base):
    __tablename__ = "insurer"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    crm_insurer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class InsurerUser(_Timestamps, Base):
    __tablename__ = "insurer_user"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    insurer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("insurer.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    crm_contact_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class Client(_Timestamps, Base):
    __tablename__ = "client"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    client_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    crm_client_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    risk_analyst_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("risk_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    service_manager_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("risk_user.id", ondelete="SET NULL"),
        nullable=True,
    )
    insurer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("insurer.id", ondelete="SET NULL"),
        nullable=True,
    )
    abn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    acn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    sector: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class ClientUser(_Timestamps, Base):
    __tablename__ = "client_user"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("client.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    crm_contact_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    has_portal_access: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    module_access: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    manage_columns: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class Debtor(_Timestamps, Base):
    __tablename__ = "debtor"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_name: Mapped[str] = mapped_column(Text, nullable=False)
    debtor_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    entity_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    abn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    acn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    registration_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class ClientDebtor(_Timestamps, Base):
    __tablename__ = "client_debtor"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("client.id", ondelete="CASCADE"),
        nullable=False,
    )
    debtor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("debtor.id", ondelete="CASCADE"),
        nullable=False,
    )
    credit_limit: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    is_endorsed_limit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    active_application_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)


Index("ix_client_debtor_client_id", ClientDebtor.client_id)
Index("ix_client_debtor_debtor_id", ClientDebtor.debtor_id)
Index(
    "uq_client_debtor_live_pair",
    ClientDebtor.client_id,
    ClientDebtor.debtor_id,
    unique=True,
    postgresql_where=text("is_active = true"),
    sqlite_where=text("is_active = 1"),
)


class DebtorDirector(_Timestamps, Base):
    __tablename__ = "debtor_director"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    debtor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("debtor.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=DirectorType.INDIVIDUAL.value)
    first_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    middle_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    entity_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    abn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    acn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    registration_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


Index("ix_debtor_director_debtor_id", DebtorDirector.debtor_id)


class Application(_Timestamps, Base):
    __tablename__ = "application"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id: Mapped[str] = mapped_column(String(64), nullable=False)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("client.id", ondelete="CASCADE"),
        nullable=False,
    )
    debtor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("debtor.id", ondelete="CASCADE"),
        nullable=False,
    )
    client_debtor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("client_debtor.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=ApplicationStatus.DRAFT.value)
    credit_limit: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    accepted_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    is_endorsed_limit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    limit_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    request_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_or_declining_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)


Index("ix_application_client_id_status", Application.client_id, Application.status)
Index("ix_application_client_debtor_id", Application.client_debtor_id)


class Policy(_Timestamps, Base):
    __tablename__ = "policy"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("client.id", ondelete="CASCADE"),
        nullable=False,
    )
    insurer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("insurer.id", ondelete="SET NULL"),
        nullable=True,
    )
    crm_policy_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    product: Mapped[str] = mapped_column(Text, nullable=False)
    policy_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discretionary_limit: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    aggregate_of_credit_limit: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    credit_checks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    nz_credit_checks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    inception_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


Index("ix_policy_client_id", Policy.client_id)


class Task(_Timestamps, Base):
    __tablename__ = "task"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    client_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    assignee_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    assignee_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_by_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    priority: Mapped[str | None] = mapped_column(String(16), nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class Note(_Timestamps, Base):
    __tablename__ = "note"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    note_for: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    client_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by_type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_by_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


Index("ix_note_entity", Note.note_for, Note.entity_id)


class DocumentType(_Timestamps, Base):
    __tablename__ = "document_type"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_title: Mapped[str] = mapped_column(Text, nullable=False)
    document_for: Mapped[str] = mapped_column(String(32), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Generic, Literal, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


T = TypeVar("T")

# Amounts leave the API as JSON numbers.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuccessResponse(BaseModel, Generic[T]):
    status: Literal["SUCCESS"] = "SUCCESS"
    data: T


class ErrorEnvelope(BaseModel):
    status: Literal["ERROR"] = "ERROR"
    message_code: str | None = Field(default=None, serialization_alias="messageCode")
    message: str
    correlation_id: str | None = Field(default=None, serialization_alias="correlationId")


class ListQuery(CamelModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=500)
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] = "desc"
    search: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class ListPage(BaseModel):
    docs: list[dict[str, Any]]
    headers: list[dict[str, str]] = Field(default_factory=list)
    total: int
    page: int
    limit: int
    pages: int


class ColumnField(CamelModel):
    name: str
    label: str
    type: str
    is_checked: bool


class ColumnSelectionRead(CamelModel):
    default_fields: list[ColumnField]
    custom_fields: list[ColumnField]


class ColumnUpdateRequest(CamelModel):
    is_reset: bool = False
    columns: list[str] = Field(default_factory=list)


class EndorsedLimitMetric(CamelModel):
    endorsed_limit_count: Money = Decimal("0")
    total_count: Money = Decimal("0")


class CreditCheckMetric(CamelModel):
    application_count: int = 0
    total_count: int = 0


class StatusCount(BaseModel):
    status: str
    count: int = 0


class ApprovedAmountMetric(CamelModel):
    total: Money = Decimal("0")
    approved_amount: Money = Decimal("0")


class ApprovedApplicationMetric(CamelModel):
    approved: int = 0
    partially_approved: int = 0
    rejected: int = 0
    cancelled: int = 0


class DashboardRead(CamelModel):
    discretionary_limit: Money = Decimal("0")
    endorsed_limit: EndorsedLimitMetric | None = None
    application_status: list[StatusCount] = Field(default_factory=list)
    approved_amount: ApprovedAmountMetric = Field(default_factory=ApprovedAmountMetric)
    approved_application: ApprovedApplicationMetric = Field(default_factory=ApprovedApplicationMetric)
    res_checks_count: CreditCheckMetric = Field(default_factory=CreditCheckMetric)
    show_graphs: bool = False


class EndorsedLimitCheckRequest(CamelModel):
    client_id: UUID | None = None
    credit_limit: Decimal = Field(gt=0)
    on_date: date | None = None


class EndorsedLimitCheckRead(CamelModel):
    client_id: UUID
    credit_limit: Money
    is_endorsed_limit: bool
    discretionary_limit: Money | None = None

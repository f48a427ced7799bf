"""Read-side records for the retail entities held in the entity store."""

from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


# Backends without timezone support return naive values; those are stored as UTC.
UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class DrawerEventKind(StrEnum):
    DRAWER_OPEN_NO_SALE = "drawer_open_no_sale"
    DRAWER_OPEN_WITH_SALE = "drawer_open_with_sale"
    CASH_IN = "cash_in"
    CASH_OUT = "cash_out"


class AuthorizationStatus(StrEnum):
    APPROVED = "approved"
    DECLINED = "declined"
    PENDING = "pending"


class OperatorStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class SaleRecord(_Record):
    id: str
    pdv_id: str | None = None
    operator_id: str
    customer_document: str | None = None
    total_amount: Decimal
    sold_at: UtcDatetime


class CancellationRecord(_Record):
    id: str
    sale_id: str | None = None
    operator_id: str | None = None
    cancelled_at: UtcDatetime
    reason: str | None = None


class DrawerEventRecord(_Record):
    id: str
    operator_id: str
    pdv_id: str | None = None
    kind: DrawerEventKind
    occurred_at: UtcDatetime


class AuthorizationRecord(_Record):
    id: str
    authorization_code: str
    operator_id: str | None = None
    pdv_id: str | None = None
    authorized_at: UtcDatetime
    amount: Decimal | None = None
    status: AuthorizationStatus


class CashDiscrepancyRecord(_Record):
    id: int | str
    pdv_id: str
    expected_amount: Decimal | None = None
    actual_amount: Decimal | None = None
    discrepancy: Decimal | None = None
    discrepancy_date: UtcDatetime


class OperatorRecord(_Record):
    cpf: str
    name: str
    hire_date: UtcDatetime | None = None
    status: OperatorStatus = OperatorStatus.ACTIVE

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Table(str, Enum):
    credit_entries = "credit_entries"
    direct_sales = "direct_sales"
    payments = "payments"


# Polling order within one cycle.
POLL_ORDER: tuple[Table, ...] = (Table.credit_entries, Table.direct_sales, Table.payments)


class SubscriptionStatus(str, Enum):
    subscribed = "SUBSCRIBED"
    timed_out = "TIMED_OUT"
    channel_error = "CHANNEL_ERROR"
    closed = "CLOSED"

    @property
    def is_terminal(self) -> bool:
        return self is not SubscriptionStatus.subscribed


class IngestionState(str, Enum):
    subscribing = "SUBSCRIBING"
    live = "LIVE"
    polling = "POLLING"


class _Row(BaseModel):
    """Base for rows read from Supabase (column names are mapped via aliases)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int


def _zero_if_null(value: object) -> object:
    return 0 if value is None or value == "" else value


def _lower(value: object) -> str:
    return str(value or "").strip().lower()


class Customer(_Row):
    name: str = Field(default="", alias="nombre")
    phone: str | None = Field(default=None, alias="telefono")

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v: object) -> str:
        return str(v or "").strip()

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, v: object) -> str | None:
        # Stored as text or as a bigint depending on the schema.
        return None if v is None else str(v).strip()

    @property
    def has_contact(self) -> bool:
        return bool((self.phone or "").strip())


class CreditSaleEntry(_Row):
    customer_id: int | None = Field(default=None, alias="cliente_id")
    quantity: float | None = Field(default=None, alias="kilos")
    subtotal: float = 0.0
    status: str = Field(default="", alias="estado")
    sale_id: int | None = Field(default=None, alias="venta_id")

    @field_validator("subtotal", mode="before")
    @classmethod
    def _subtotal(cls, v: object) -> object:
        return _zero_if_null(v)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: object) -> str:
        return _lower(v)


class DirectSale(_Row):
    customer_id: int | None = Field(default=None, alias="cliente_id")
    total: float = 0.0
    status: str = Field(default="", alias="estado")
    sale_type: str = Field(default="", alias="tipo_venta")

    @field_validator("total", mode="before")
    @classmethod
    def _total(cls, v: object) -> object:
        return _zero_if_null(v)

    @field_validator("status", "sale_type", mode="before")
    @classmethod
    def _tags(cls, v: object) -> str:
        return _lower(v)


class Payment(_Row):
    customer_id: int | None = Field(default=None, alias="cliente_id")
    credit_entry_id: int | None = Field(default=None, alias="ventas_libriado_id")
    sale_id: int | None = Field(default=None, alias="venta_id")
    amount: float = Field(default=0.0, alias="monto")
    paid_at: str | None = Field(default=None, alias="fecha")

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v: object) -> object:
        return _zero_if_null(v)


class LineItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    quantity: float | None = Field(default=None, alias="cantidad")


class BalanceExclusion(BaseModel):
    """Rows left out of a balance so it reflects the state before one transaction."""

    credit_entry_id: int | None = None
    direct_sale_id: int | None = None
    payment_id: int | None = None


class BalanceSummary(BaseModel):
    total_sales: float
    total_payments: float
    balance: float = Field(ge=0.0)

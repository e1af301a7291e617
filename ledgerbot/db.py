from __future__ import annotations

import logging
from typing import Any

import httpx

from .settings import Settings
from .types import CreditSaleEntry, Customer, DirectSale, LineItem, Payment, Table

logger = logging.getLogger(__name__)


class DataSourceError(RuntimeError):
    """A Supabase query failed (HTTP error status or network failure)."""


def _in_list(ids: list[int] | set[int]) -> str:
    return "in.(" + ",".join(str(i) for i in sorted(ids)) + ")"


class LedgerStore:
    """Read-only access to the sales ledger through Supabase PostgREST."""

    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        *,
        credit_entries_table: str = "ventas_libriado",
        sales_table: str = "ventas",
        payments_table: str = "pagos",
        customers_table: str = "clientes",
        line_items_table: str = "detalle_venta",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = supabase_url.rstrip("/")
        self._key = service_role_key
        self._client = client or httpx.AsyncClient(timeout=20)
        self.customers_table = customers_table
        self.line_items_table = line_items_table
        self.tables: dict[Table, str] = {
            Table.credit_entries: credit_entries_table,
            Table.direct_sales: sales_table,
            Table.payments: payments_table,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> LedgerStore:
        return cls(
            settings.supabase_url or "",
            settings.supabase_service_role_key or "",
            credit_entries_table=settings.credit_entries_table,
            sales_table=settings.sales_table,
            payments_table=settings.payments_table,
            customers_table=settings.customers_table,
            line_items_table=settings.line_items_table,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Accept": "application/json",
        }

    def _rest_url(self, table: str) -> str:
        # Supabase PostgREST endpoint
        return f"{self._base_url}/rest/v1/{table}"

    async def _rest_get(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        logger.debug("GET %s %s", table, params)
        try:
            r = await self._client.get(self._rest_url(table), params=params, headers=self._headers())
        except httpx.HTTPError as e:
            raise DataSourceError(f"Supabase GET {table} failed: {e}") from e
        if r.status_code >= 400:
            raise DataSourceError(f"Supabase GET {table} failed ({r.status_code}): {r.text}")
        return r.json() or []

    async def _first(self, table: str, params: dict[str, str]) -> dict[str, Any] | None:
        rows = await self._rest_get(table, {**params, "limit": "1"})
        return rows[0] if rows else None

    # Customers

    async def get_customer(self, customer_id: int) -> Customer | None:
        row = await self._first(
            self.customers_table,
            {"select": "id,nombre,telefono", "id": f"eq.{int(customer_id)}"},
        )
        return Customer.model_validate(row) if row else None

    async def list_contactable_customers(self) -> list[Customer]:
        rows = await self._rest_get(
            self.customers_table,
            {"select": "id,nombre,telefono", "telefono": "not.is.null", "order": "id.asc"},
        )
        return [Customer.model_validate(r) for r in rows]

    # Sales

    async def list_direct_sales(self, customer_id: int) -> list[DirectSale]:
        rows = await self._rest_get(
            self.tables[Table.direct_sales],
            {"select": "id,cliente_id,total,estado,tipo_venta", "cliente_id": f"eq.{int(customer_id)}"},
        )
        return [DirectSale.model_validate(r) for r in rows]

    async def list_credit_entries(self, customer_id: int) -> list[CreditSaleEntry]:
        rows = await self._rest_get(
            self.tables[Table.credit_entries],
            {"select": "id,cliente_id,subtotal,venta_id", "cliente_id": f"eq.{int(customer_id)}"},
        )
        return [CreditSaleEntry.model_validate(r) for r in rows]

    async def get_credit_entry(self, entry_id: int) -> CreditSaleEntry | None:
        row = await self._first(self.tables[Table.credit_entries], {"select": "*", "id": f"eq.{int(entry_id)}"})
        return CreditSaleEntry.model_validate(row) if row else None

    async def get_direct_sale(self, sale_id: int) -> DirectSale | None:
        row = await self._first(self.tables[Table.direct_sales], {"select": "*", "id": f"eq.{int(sale_id)}"})
        return DirectSale.model_validate(row) if row else None

    async def first_line_item(self, sale_id: int) -> LineItem | None:
        row = await self._first(
            self.line_items_table,
            {"select": "cantidad", "venta_id": f"eq.{int(sale_id)}", "order": "id.asc"},
        )
        return LineItem.model_validate(row) if row else None

    # Payments

    async def _payments(self, params: dict[str, str]) -> list[Payment]:
        rows = await self._rest_get(
            self.tables[Table.payments],
            {"select": "id,cliente_id,venta_id,ventas_libriado_id,monto,fecha", **params},
        )
        return [Payment.model_validate(r) for r in rows]

    async def list_payments_by_customer(self, customer_id: int) -> list[Payment]:
        return await self._payments({"cliente_id": f"eq.{int(customer_id)}"})

    async def list_payments_by_sales(self, sale_ids: set[int]) -> list[Payment]:
        if not sale_ids:
            return []
        return await self._payments({"venta_id": _in_list(sale_ids)})

    async def list_payments_for_sale(self, sale_id: int) -> list[Payment]:
        return await self._payments({"venta_id": f"eq.{int(sale_id)}"})

    async def list_payments_for_credit_entry(self, entry_id: int) -> list[Payment]:
        return await self._payments({"ventas_libriado_id": f"eq.{int(entry_id)}"})

    # Cursor scans

    async def max_id(self, table: Table) -> int:
        row = await self._first(self.tables[table], {"select": "id", "order": "id.desc"})
        return int(row["id"]) if row else 0

    async def fetch_after(self, table: Table, after_id: int, limit: int = 500) -> list[dict[str, Any]]:
        """Raw rows with id > after_id, oldest first."""

        limit = max(1, min(int(limit), 1000))
        return await self._rest_get(
            self.tables[table],
            {"select": "*", "id": f"gt.{int(after_id)}", "order": "id.asc", "limit": str(limit)},
        )

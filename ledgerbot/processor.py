from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

from pydantic import BaseModel, ValidationError

from .balance import compute_balance
from .cursor import CursorStore
from .db import LedgerStore
from .dedup import DedupWindow
from .messages import PaymentNotice, SaleNotice, credit_sale_message, paid_sale_message, payment_message
from .types import BalanceExclusion, CreditSaleEntry, Customer, DirectSale, Payment, Table
from .whatsapp import to_chat_address

logger = logging.getLogger(__name__)

DEFAULT_OPEN_CREDIT_STATUSES = frozenset(
    {"fiado", "pendiente", "parcial", "credit", "credit-pending", "pending", "partial"}
)

_ROW_MODELS: dict[Table, type[BaseModel]] = {
    Table.credit_entries: CreditSaleEntry,
    Table.direct_sales: DirectSale,
    Table.payments: Payment,
}


class Transport(Protocol):
    async def send(self, address: str, text: str) -> bool: ...


def row_id(row: dict[str, Any]) -> int | None:
    try:
        return int(row.get("id"))
    except (TypeError, ValueError):
        return None


class EventProcessor:
    """Turns inserted rows into customer notifications and advances cursors.

    Rows arrive as raw dicts from either the realtime feed or the poller and are
    validated into their models here. Data source errors propagate to the caller
    without advancing the cursor (except for direct sales, whose cursor moves
    first), so the row is picked up again.
    """

    def __init__(
        self,
        store: LedgerStore,
        transport: Transport,
        cursors: CursorStore,
        dedup: DedupWindow,
        *,
        open_credit_statuses: Iterable[str] = DEFAULT_OPEN_CREDIT_STATUSES,
        ledger_sale_type: str = "libriado",
        business_name: str = "",
        country_code: str = "57",
        address_suffix: str = "@c.us",
    ) -> None:
        self.store = store
        self.transport = transport
        self.cursors = cursors
        self.dedup = dedup
        self.open_credit_statuses = frozenset(s.strip().lower() for s in open_credit_statuses)
        self.ledger_sale_type = (ledger_sale_type or "").strip().lower()
        self.business_name = business_name
        self.country_code = country_code
        self.address_suffix = address_suffix

    def is_open_credit(self, status: str) -> bool:
        return (status or "").strip().lower() in self.open_credit_statuses

    async def dispatch(self, table: Table, row: dict[str, Any]) -> None:
        try:
            record = _ROW_MODELS[table].model_validate(row)
        except ValidationError as e:
            logger.warning("Skipping malformed %s row id=%s: %s", table.value, row.get("id"), e)
            self.cursors.advance(table, row_id(row))
            return

        if table is Table.credit_entries:
            await self.process_credit_entry(record)
        elif table is Table.direct_sales:
            await self.process_direct_sale(record)
        else:
            await self.process_payment(record)

    async def process_credit_entry(self, entry: CreditSaleEntry) -> None:
        await self._notify_credit_entry(entry)
        self.cursors.advance(Table.credit_entries, entry.id)

    async def process_direct_sale(self, sale: DirectSale) -> None:
        # Always move forward, even for rows skipped below.
        self.cursors.advance(Table.direct_sales, sale.id)
        if sale.sale_type == self.ledger_sale_type:
            return
        await self._notify_direct_sale(sale)

    async def process_payment(self, payment: Payment) -> None:
        await self._notify_payment(payment)
        self.cursors.advance(Table.payments, payment.id)

    async def _contactable_customer(self, customer_id: int | None) -> Customer | None:
        if not customer_id:
            return None
        customer = await self.store.get_customer(customer_id)
        if customer is None or not customer.has_contact:
            return None
        return customer

    async def _balance(self, customer_id: int, exclude: BalanceExclusion | None = None) -> float:
        summary = await compute_balance(
            self.store, customer_id, exclude, ledger_sale_type=self.ledger_sale_type
        )
        return summary.balance

    async def _send(self, customer: Customer, text: str) -> bool:
        address = to_chat_address(customer.phone, country_code=self.country_code, suffix=self.address_suffix)
        return await self.transport.send(address, text)

    async def _notify_credit_entry(self, entry: CreditSaleEntry) -> None:
        customer = await self._contactable_customer(entry.customer_id)
        if customer is None:
            return

        if self.is_open_credit(entry.status):
            paid_rows = await self.store.list_payments_for_credit_entry(entry.id)
            installment = sum(p.amount for p in paid_rows)
            prior_debt = await self._balance(customer.id, BalanceExclusion(credit_entry_id=entry.id))
            notice = SaleNotice(
                customer_name=customer.name,
                quantity=entry.quantity,
                purchase_value=entry.subtotal,
                installment=installment,
                purchase_balance=max(0.0, entry.subtotal - installment),
                prior_debt=prior_debt,
            )
            text = credit_sale_message(notice, self.business_name)
        else:
            notice = SaleNotice(customer_name=customer.name, quantity=entry.quantity, purchase_value=entry.subtotal)
            text = paid_sale_message(notice, self.business_name)

        if await self._send(customer, text):
            self.dedup.mark(entry.sale_id)
            logger.info("Credit entry %s notified to %s", entry.id, customer.name)

    async def _notify_direct_sale(self, sale: DirectSale) -> None:
        customer = await self._contactable_customer(sale.customer_id)
        if customer is None:
            return

        item = await self.store.first_line_item(sale.id)
        quantity = item.quantity if item else None

        if self.is_open_credit(sale.status):
            prior_debt = await self._balance(customer.id, BalanceExclusion(direct_sale_id=sale.id))
            paid = sum(p.amount for p in await self.store.list_payments_for_sale(sale.id))
            notice = SaleNotice(
                customer_name=customer.name,
                quantity=quantity,
                purchase_value=sale.total,
                installment=paid,
                purchase_balance=max(0.0, sale.total - paid),
                prior_debt=prior_debt,
            )
            text = credit_sale_message(notice, self.business_name)
        else:
            notice = SaleNotice(customer_name=customer.name, quantity=quantity, purchase_value=sale.total)
            text = paid_sale_message(notice, self.business_name)

        if await self._send(customer, text):
            self.dedup.mark(sale.id)
            logger.info("Sale %s (%s) notified to %s", sale.id, sale.sale_type or "sale", customer.name)

    async def resolve_payment_customer(self, payment: Payment) -> int | None:
        if payment.customer_id:
            return payment.customer_id

        if payment.credit_entry_id:
            entry = await self.store.get_credit_entry(payment.credit_entry_id)
            if entry and entry.customer_id:
                return entry.customer_id

        if payment.sale_id:
            sale = await self.store.get_direct_sale(payment.sale_id)
            if sale and sale.customer_id:
                return sale.customer_id

        return None

    async def _notify_payment(self, payment: Payment) -> None:
        if payment.amount <= 0:
            return
        if self.dedup.recently_notified(payment.sale_id):
            logger.info("Payment %s belongs to sale %s, already notified", payment.id, payment.sale_id)
            return

        customer = await self._contactable_customer(await self.resolve_payment_customer(payment))
        if customer is None:
            return

        # The payment row is already stored, so the balance includes it.
        debt_after = await self._balance(customer.id)
        debt_before = debt_after + payment.amount
        if debt_before <= 0 or debt_before == debt_after:
            return

        notice = PaymentNotice(
            customer_name=customer.name,
            amount=payment.amount,
            debt_before=debt_before,
            debt_after=debt_after,
        )
        if await self._send(customer, payment_message(notice, self.business_name)):
            logger.info("Payment %s notified to %s", payment.id, customer.name)

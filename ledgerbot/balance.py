from __future__ import annotations

from .db import LedgerStore
from .types import BalanceExclusion, BalanceSummary


async def compute_balance(
    store: LedgerStore,
    customer_id: int,
    exclude: BalanceExclusion | None = None,
    *,
    ledger_sale_type: str = "libriado",
) -> BalanceSummary:
    """Returns what a customer owes across direct sales, credit entries and payments.

    `exclude` removes one transaction's own rows (its sale and the payments tied to
    it), which gives the balance as it stood before that transaction.

    Direct sales tagged with the ledger sale type are already represented by their
    credit entries and are never counted twice.
    """

    exclude = exclude or BalanceExclusion()
    ledger_type = (ledger_sale_type or "").lower()

    direct_sales = [
        s
        for s in await store.list_direct_sales(customer_id)
        if s.sale_type != ledger_type and s.id != exclude.direct_sale_id
    ]
    credit_entries = [
        e for e in await store.list_credit_entries(customer_id) if e.id != exclude.credit_entry_id
    ]

    total_sales = sum(s.total for s in direct_sales) + sum(e.subtotal for e in credit_entries)

    sale_ids = {s.id for s in direct_sales}
    sale_ids.update(e.sale_id for e in credit_entries if e.sale_id)

    # A payment can match both filters; key by id so it is counted once.
    payments = {p.id: p for p in await store.list_payments_by_customer(customer_id)}
    for p in await store.list_payments_by_sales(sale_ids):
        payments[p.id] = p

    total_payments = 0.0
    for p in payments.values():
        if exclude.payment_id is not None and p.id == exclude.payment_id:
            continue
        if exclude.direct_sale_id is not None and p.sale_id == exclude.direct_sale_id:
            continue
        if exclude.credit_entry_id is not None and p.credit_entry_id == exclude.credit_entry_id:
            continue
        total_payments += p.amount

    return BalanceSummary(
        total_sales=total_sales,
        total_payments=total_payments,
        balance=max(0.0, total_sales - total_payments),
    )

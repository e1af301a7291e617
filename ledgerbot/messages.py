from __future__ import annotations

from dataclasses import dataclass


def format_currency(value: float | None) -> str:
    # Whole units with thousands separators, e.g. $50,000.
    return f"${float(value or 0):,.0f}"


def _quantity(quantity: float | None) -> str:
    if quantity is None:
        return "Not specified"
    return f"{quantity:g} kg"


@dataclass(frozen=True)
class SaleNotice:
    customer_name: str
    quantity: float | None
    purchase_value: float
    installment: float = 0.0
    purchase_balance: float = 0.0
    prior_debt: float = 0.0


@dataclass(frozen=True)
class PaymentNotice:
    customer_name: str
    amount: float
    debt_before: float
    debt_after: float

    @property
    def settled(self) -> bool:
        return self.debt_after <= 0


def _header(business_name: str) -> str:
    return f"*{business_name}*\n\n" if business_name else ""


def paid_sale_message(notice: SaleNotice, business_name: str = "") -> str:
    lines = [
        f"Dear {notice.customer_name}, thank you for your purchase.",
        "",
        "We have recorded your purchase, paid in full:",
        f"- Quantity: {_quantity(notice.quantity)}",
        f"- Amount paid: {format_currency(notice.purchase_value)}",
        "",
        "We appreciate your business.",
    ]
    return _header(business_name) + "\n".join(lines)


def credit_sale_message(notice: SaleNotice, business_name: str = "") -> str:
    purchase_value = max(0.0, notice.purchase_value)
    installment = max(0.0, notice.installment)
    new_debt = max(0.0, notice.purchase_balance)
    prior_debt = max(0.0, notice.prior_debt)

    lines = [
        f"Dear {notice.customer_name}, thank you for your purchase.",
        "",
        "We have recorded your purchase on credit:",
        f"- Quantity: {_quantity(notice.quantity)}",
        f"- Purchase value: {format_currency(purchase_value)}",
        f"- Paid with this purchase: {format_currency(installment)}",
        f"- Balance of this purchase: {format_currency(new_debt)}",
        "",
        "Account summary:",
        f"- Previous debt: {format_currency(prior_debt)}",
        f"- New debt: {format_currency(new_debt)}",
        f"- Total debt: {format_currency(prior_debt + new_debt)}",
        "",
        "Thank you for your trust.",
    ]
    return _header(business_name) + "\n".join(lines)


def payment_message(notice: PaymentNotice, business_name: str = "") -> str:
    if notice.settled:
        lines = [
            f"Dear {notice.customer_name}, we have recorded your payment.",
            "",
            "Details:",
            f"- Previous debt: {format_currency(notice.debt_before)}",
            f"- Payment: {format_currency(notice.amount)}",
            f"- Pending balance: {format_currency(0)}",
            "",
            "Your debt is now fully settled. Thank you for your punctuality and trust.",
        ]
    else:
        lines = [
            f"Dear {notice.customer_name}, we have recorded your partial payment.",
            "",
            "Details:",
            f"- Previous debt: {format_currency(notice.debt_before)}",
            f"- Payment: {format_currency(notice.amount)}",
            f"- Pending balance: {format_currency(notice.debt_after)}",
            "",
            "Thank you for keeping your payments up to date.",
        ]
    return _header(business_name) + "\n".join(lines)


def reminder_message(customer_name: str, balance: float, schedule_note: str, business_name: str = "") -> str:
    lines = [
        f"Dear {customer_name}, this is a friendly payment reminder.",
        "",
        f"Your current pending balance is: {format_currency(balance)}",
        "",
        "We appreciate your prompt attention.",
    ]
    if schedule_note:
        lines += ["", schedule_note]
    return _header(business_name) + "\n".join(lines)

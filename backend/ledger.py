from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from backend.budget_engine import Transaction
from backend.portfolio_engine import Investment, portfolio_value

ZERO = Decimal("0")


@dataclass(frozen=True)
class PortfolioSummary:
    total_income: Decimal
    total_expenses: Decimal
    investments_cash_out: Decimal
    investments_value: Decimal
    total_balance: Decimal


def summarize_ledger(
    transactions: Iterable[Transaction],
    investments: Iterable[Investment],
) -> PortfolioSummary:
    """Cash position plus the mark-to-market value of the portfolio.

    Money sent to buy investments leaves the cash side and comes back as
    asset value, so it is not counted as an expense.
    """
    totals = {"income": ZERO, "expense": ZERO, "investment": ZERO}
    for txn in transactions:
        txn_type = txn.type.strip().lower()
        if txn_type in totals:
            totals[txn_type] += _coerce_amount(txn.amount)

    investments_value = portfolio_value(investments)
    cash = totals["income"] - totals["expense"] - totals["investment"]
    return PortfolioSummary(
        total_income=totals["income"],
        total_expenses=totals["expense"],
        investments_cash_out=totals["investment"],
        investments_value=investments_value,
        total_balance=cash + investments_value,
    )


def build_financial_context(
    summary: PortfolioSummary,
    investments: Sequence[Investment],
) -> str:
    lines = [
        "Resumen Financiero Actual (Valores en EUROS €):",
        f"- Balance Total: €{summary.total_balance}",
        f"- Ingresos Totales: €{summary.total_income}",
        f"- Gastos Totales: €{summary.total_expenses}",
        f"- Valor Cartera Inversiones: €{summary.investments_value}",
        "",
        "Detalle Inversiones:",
    ]
    for inv in investments:
        lines.append(
            f"- {inv.shares} de {inv.ticker}. Comprado en {inv.original_currency}. "
            f"Valor actual: €{inv.current_price}"
        )
    return "\n".join(lines)


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
